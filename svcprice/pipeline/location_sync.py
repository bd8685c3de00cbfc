"""Apply state regional price parities to location rows.

Rows are matched by exact, case-sensitive state name against locations of
type 'state'. Names that match nothing are collected for diagnostics and do
not fail the run on their own.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import and_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from svcprice.db.models import LocationModel
from svcprice.pipeline.errors import PersistenceError
from svcprice.pipeline.types import RppRow, StateSyncResult

logger = logging.getLogger(__name__)

# All 50 states, small tolerance for source omissions
MIN_UPDATED_STATES = 45


def parse_index_value(raw: object) -> float:
    """Parse a source value string such as "1,234.5".

    Returns nan for anything that is not a number ("N/A", "(NA)", "").
    """
    text = str(raw if raw is not None else "").replace(",", "").strip()
    try:
        return float(text)
    except ValueError:
        return math.nan


class LocationIndexSynchronizer:
    """Writes rpp_index/rpp_year onto state locations within the run's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def apply_state_indices(self, rows: Iterable[RppRow], year: int) -> StateSyncResult:
        """Update every state location whose name matches a row.

        Args:
            rows: Regional index rows for a single year
            year: The year the rows describe

        Returns:
            StateSyncResult with the number of rows that updated a location
            and the names that matched nothing
        """
        result = StateSyncResult()

        for row in rows:
            geo_name = row.geo_name.strip()
            value = parse_index_value(row.data_value)

            if not geo_name or not math.isfinite(value):
                logger.debug("Skipping RPP row %r = %r", row.geo_name, row.data_value)
                result.skipped += 1
                continue

            try:
                outcome = await self.session.execute(
                    update(LocationModel)
                    .where(
                        and_(
                            LocationModel.type == "state",
                            LocationModel.state_name == geo_name,
                        )
                    )
                    .values(
                        rpp_index=value,
                        rpp_year=year,
                        updated_at=datetime.now(timezone.utc),
                    )
                    .execution_options(synchronize_session=False)
                )
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Failed to update RPP for {geo_name}: {exc}") from exc

            if outcome.rowcount and outcome.rowcount > 0:
                logger.debug("%-20s RPP = %.1f", geo_name, value)
                result.updated_count += 1
            else:
                result.unmatched.append(geo_name)

        logger.info(
            "Updated %d states with %s RPP data (%d unmatched, %d skipped)",
            result.updated_count,
            year,
            len(result.unmatched),
            result.skipped,
        )
        if result.unmatched:
            logger.warning("Unmatched RPP names: %s", ", ".join(result.unmatched))

        return result
