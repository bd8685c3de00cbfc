"""BEA Regional API client for state Regional Price Parities (table SARPP).

GetParameterValuesFiltered lists the SARPP line codes; GetData returns the
state values for a line code over a year window.
Docs: https://apps.bea.gov/api/_pdf/bea_web_service_api_user_guide.pdf
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from svcprice.config import DEFAULT_BEA_BASE_URL
from svcprice.pipeline.errors import SourceDataInvalid, SourceUnavailable
from svcprice.pipeline.types import RppFetchResult, RppRow

logger = logging.getLogger(__name__)

SOURCE_NAME = "BEA"
RPP_TABLE = "SARPP"


def _parse_year(raw: Any) -> int | None:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


class BEAClient:
    """Discovers the all-items RPP line code and fetches state RPP values."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = DEFAULT_BEA_BASE_URL,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            raise ValueError("BEA_API_KEY environment variable not set")

        self.api_key = api_key
        self.base_url = base_url
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def discover_line_code(self) -> str:
        """Find the SARPP line code for the all-items RPP.

        Raises:
            SourceDataInvalid: No parameter row describes the all-items index.
        """
        results = await self._request({
            "method": "GetParameterValuesFiltered",
            "datasetname": "Regional",
            "TargetParameter": "LineCode",
            "TableName": RPP_TABLE,
        })

        rows = results.get("ParamValue")
        if not isinstance(rows, list):
            raise SourceDataInvalid(SOURCE_NAME, "LineCode list missing from results")

        def desc(row: Any) -> str:
            return str(row.get("Desc") or "").lower() if isinstance(row, dict) else ""

        pick = next(
            (r for r in rows if "all items" in desc(r) and "rpp" in desc(r)), None
        ) or next((r for r in rows if "all items" in desc(r)), None)

        if not pick or not pick.get("Key"):
            raise SourceDataInvalid(SOURCE_NAME, f"no 'All items' LineCode in {RPP_TABLE}")

        line_code = str(pick["Key"])
        logger.info("Discovered %s LineCode %s (%s)", RPP_TABLE, line_code, pick.get("Desc"))
        return line_code

    async def resolve_line_code(self, known: str | None = None) -> str:
        """Use a previously discovered line code, or discover one."""
        if known:
            logger.debug("Using configured %s LineCode %s", RPP_TABLE, known)
            return known
        return await self.discover_line_code()

    async def fetch_state_indices(
        self, line_code: str, year_window: str = "LAST5"
    ) -> RppFetchResult:
        """Fetch state RPP rows and keep only the latest year present.

        Raises:
            SourceUnavailable: Network failure or non-2xx status.
            SourceDataInvalid: No rows, rows missing required fields, or no
                parseable TimePeriod.
        """
        results = await self._request({
            "method": "GetData",
            "datasetname": "Regional",
            "TableName": RPP_TABLE,
            "LineCode": line_code,
            "GeoFips": "STATE",
            "Year": year_window,
        })

        data = results.get("Data")
        if not isinstance(data, list) or not data:
            raise SourceDataInvalid(SOURCE_NAME, "returned no data rows")

        parsed: list[tuple[dict, int | None]] = []
        for row in data:
            if not isinstance(row, dict) or not all(
                k in row for k in ("GeoName", "DataValue", "TimePeriod")
            ):
                raise SourceDataInvalid(SOURCE_NAME, f"malformed data row {row!r}")
            parsed.append((row, _parse_year(row["TimePeriod"])))

        years = {year for _, year in parsed if year is not None}
        if not years:
            raise SourceDataInvalid(SOURCE_NAME, "no parseable TimePeriod in data rows")
        latest_year = max(years)

        rows = [
            RppRow(
                geo_name=str(row["GeoName"] or ""),
                data_value=str(row["DataValue"] or ""),
                year=year,
            )
            for row, year in parsed
            if year == latest_year
        ]

        logger.info("Latest RPP year %s: %d state rows", latest_year, len(rows))
        return RppFetchResult(line_code=line_code, latest_year=latest_year, rows=rows)

    async def _request(self, params: dict[str, str]) -> dict[str, Any]:
        query = {"UserID": self.api_key, **params, "ResultFormat": "JSON"}
        try:
            response = await self.client.get(self.base_url, params=query)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailable(
                SOURCE_NAME,
                f"{params['method']} failed: {exc.response.status_code} {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise SourceUnavailable(SOURCE_NAME, f"{params['method']} request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceDataInvalid(SOURCE_NAME, "response is not JSON") from exc

        beaapi = payload.get("BEAAPI") if isinstance(payload, dict) else None
        if not isinstance(beaapi, dict):
            raise SourceDataInvalid(SOURCE_NAME, "response missing BEAAPI envelope")

        results = beaapi.get("Results")
        error = beaapi.get("Error") or (results.get("Error") if isinstance(results, dict) else None)
        if error:
            detail = error.get("APIErrorDescription") if isinstance(error, dict) else error
            raise SourceDataInvalid(SOURCE_NAME, f"API error: {detail}")

        if not isinstance(results, dict):
            raise SourceDataInvalid(SOURCE_NAME, "response missing Results")
        return results

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> BEAClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
