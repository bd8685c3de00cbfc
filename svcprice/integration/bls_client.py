"""BLS Public Data API client for the national CPI series.

API v2 single-series GET returns roughly the last three years, newest first.
Docs: https://www.bls.gov/developers/api_signature_v2.htm
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from svcprice.config import DEFAULT_BLS_BASE_URL, DEFAULT_CPI_SERIES_ID
from svcprice.pipeline.errors import SourceDataInvalid, SourceUnavailable
from svcprice.pipeline.types import CpiReading

logger = logging.getLogger(__name__)

SOURCE_NAME = "BLS"


class BLSClient:
    """Fetches CPI observations from the BLS timeseries endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_BLS_BASE_URL,
        api_key: str | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def fetch_latest_cpi(self, series_id: str = DEFAULT_CPI_SERIES_ID) -> CpiReading:
        """Return the newest observation of a CPI series.

        Raises:
            SourceUnavailable: Network failure, non-2xx status, or a request
                the API refused to process.
            SourceDataInvalid: Payload without observations, or an entry that
                does not parse.
        """
        params = {"registrationkey": self.api_key} if self.api_key else None
        payload = await self._get_json(f"{self.base_url}{series_id}", params)

        status = payload.get("status")
        if status and status != "REQUEST_SUCCEEDED":
            messages = "; ".join(str(m) for m in payload.get("message") or [])
            raise SourceUnavailable(SOURCE_NAME, f"request not processed ({status}): {messages}")

        results = payload.get("Results")
        if not isinstance(results, dict):
            raise SourceDataInvalid(SOURCE_NAME, "response missing Results")

        series = results.get("series") or []
        if not isinstance(series, list):
            raise SourceDataInvalid(SOURCE_NAME, "response series is not a list")

        data = series[0].get("data") if series and isinstance(series[0], dict) else None
        if not isinstance(data, list) or not data:
            raise SourceDataInvalid(SOURCE_NAME, "response missing data array")

        newest = data[0]
        try:
            reading = CpiReading(
                series_id=series_id,
                year=int(newest["year"]),
                period=str(newest["period"]),
                value=float(newest["value"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SourceDataInvalid(SOURCE_NAME, f"unparseable observation {newest!r}") from exc

        logger.info("Latest CPI %s: %s = %s", series_id, reading.label, reading.value)
        return reading

    async def _get_json(self, url: str, params: dict | None) -> dict[str, Any]:
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailable(
                SOURCE_NAME,
                f"GET failed: {exc.response.status_code} {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise SourceUnavailable(SOURCE_NAME, f"request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceDataInvalid(SOURCE_NAME, "response is not JSON") from exc

        if not isinstance(payload, dict):
            raise SourceDataInvalid(SOURCE_NAME, "response is not a JSON object")
        return payload

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> BLSClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
