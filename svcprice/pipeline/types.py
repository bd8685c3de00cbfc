"""Type definitions for refresh pipeline operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class RefreshStage(str, Enum):
    """Stage of a refresh run."""

    IDLE = "IDLE"
    FETCHING_CPI = "FETCHING_CPI"
    FETCHING_RPP = "FETCHING_RPP"
    SYNCHRONIZING = "SYNCHRONIZING"
    RECOMPUTING = "RECOMPUTING"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass(frozen=True)
class CpiReading:
    """One CPI observation as published by the source."""

    series_id: str
    year: int
    period: str
    value: float

    @property
    def label(self) -> str:
        return f"{self.year}-{self.period}"


@dataclass(frozen=True)
class RppRow:
    """One state-level regional price parity row.

    data_value is kept as the source string; numeric parsing happens when the
    row is applied to a location.
    """

    geo_name: str
    data_value: str
    year: int


@dataclass
class RppFetchResult:
    """Rows for the latest year present in a regional index pull."""

    line_code: str
    latest_year: int
    rows: list[RppRow] = field(default_factory=list)


@dataclass
class StateSyncResult:
    """Outcome of applying regional index rows to locations."""

    updated_count: int = 0
    unmatched: list[str] = field(default_factory=list)
    skipped: int = 0  # empty name or non-numeric value


@dataclass
class RefreshRun:
    """Summary of one committed refresh run (never persisted)."""

    cpi: CpiReading
    rpp_line_code: str
    rpp_year: int
    rpp_rows_received: int
    updated_states: int
    total_estimates: int
    unmatched: list[str] = field(default_factory=list)
    baseline: Optional[CpiReading] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Serialize to the admin API stats payload."""
        return {
            "cpi": {
                "seriesId": self.cpi.series_id,
                "year": self.cpi.year,
                "period": self.cpi.period,
                "value": self.cpi.value,
            },
            "baseline": (
                {
                    "year": self.baseline.year,
                    "period": self.baseline.period,
                    "value": self.baseline.value,
                }
                if self.baseline
                else None
            ),
            "rpp": {
                "year": self.rpp_year,
                "stateCount": self.rpp_rows_received,
                "lineCode": self.rpp_line_code,
            },
            "updatedStates": self.updated_states,
            "unmatched": list(self.unmatched),
            "totalEstimates": self.total_estimates,
            "executionTimeMs": int(round(self.duration_seconds * 1000)),
        }
