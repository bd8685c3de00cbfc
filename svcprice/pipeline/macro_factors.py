"""Macro factor storage and CPI baseline management.

Readings are keyed by (factor_type, series_id, year, period). Refreshing a
reading only changes its value; the baseline flag is managed exclusively by
ensure_baseline(), which sets it once and then leaves it alone.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from svcprice.db.models import MacroFactorModel
from svcprice.pipeline.errors import PersistenceError
from svcprice.pipeline.types import CpiReading

logger = logging.getLogger(__name__)

CPI_FACTOR = "CPI"


class MacroFactorStore:
    """Reads and writes macro_factors within the caller's transaction."""

    def __init__(self, session: AsyncSession):
        """Initialize store with database session.

        Args:
            session: Active async SQLAlchemy session (the run's transaction)
        """
        self.session = session

    async def upsert_reading(
        self, reading: CpiReading, factor_type: str = CPI_FACTOR
    ) -> MacroFactorModel:
        """Insert or update the row for the reading's period.

        On conflict only value and updated_at change; is_baseline is never
        touched here.
        """
        try:
            current = await self._get_period(
                factor_type, reading.series_id, reading.year, reading.period
            )
            now = datetime.now(timezone.utc)

            if current is None:
                current = MacroFactorModel(
                    factor_type=factor_type,
                    series_id=reading.series_id,
                    year=reading.year,
                    period=reading.period,
                    value=reading.value,
                    is_baseline=False,
                    updated_at=now,
                )
                self.session.add(current)
                logger.debug("Inserted %s %s %s", factor_type, reading.series_id, reading.label)
            else:
                if current.value != reading.value:
                    logger.info(
                        "Revised %s %s %s: %s -> %s",
                        factor_type,
                        reading.series_id,
                        reading.label,
                        current.value,
                        reading.value,
                    )
                current.value = reading.value
                current.updated_at = now

            await self.session.flush()
            return current
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to upsert {factor_type} {reading.label}: {exc}") from exc

    async def get_baseline(self, factor_type: str, series_id: str) -> MacroFactorModel | None:
        """Return the baseline row for a series, if one is flagged."""
        try:
            result = await self.session.execute(
                select(MacroFactorModel)
                .where(
                    and_(
                        MacroFactorModel.factor_type == factor_type,
                        MacroFactorModel.series_id == series_id,
                        MacroFactorModel.is_baseline.is_(True),
                    )
                )
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read {factor_type} baseline: {exc}") from exc

    async def ensure_baseline(
        self,
        factor_type: str,
        series_id: str,
        target_year: int,
        target_period: str,
    ) -> MacroFactorModel | None:
        """Establish the baseline for a series if it has none.

        Uses the target (year, period) when it is stored, otherwise the
        earliest stored period. Returns the baseline row, or None when the
        series has no rows at all. Calling again once a baseline exists is a
        no-op.
        """
        existing = await self.get_baseline(factor_type, series_id)
        if existing is not None:
            return existing

        try:
            chosen = await self._get_period(factor_type, series_id, target_year, target_period)
            if chosen is None:
                result = await self.session.execute(
                    select(MacroFactorModel)
                    .where(
                        and_(
                            MacroFactorModel.factor_type == factor_type,
                            MacroFactorModel.series_id == series_id,
                        )
                    )
                    .order_by(MacroFactorModel.year.asc(), MacroFactorModel.period.asc())
                    .limit(1)
                )
                chosen = result.scalar_one_or_none()
                if chosen is None:
                    logger.warning("No %s rows for %s; baseline not set", factor_type, series_id)
                    return None
                logger.info(
                    "Baseline target %s-%s not stored for %s; falling back to earliest %s-%s",
                    target_year,
                    target_period,
                    series_id,
                    chosen.year,
                    chosen.period,
                )

            # No-op unless rows were flagged outside this store
            await self.clear_baseline_flags(factor_type, series_id)
            chosen.is_baseline = True
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to set {factor_type} baseline: {exc}") from exc

        logger.info("Set %s baseline for %s: %s-%s", factor_type, series_id, chosen.year, chosen.period)
        return chosen

    async def clear_baseline_flags(self, factor_type: str, series_id: str) -> None:
        """Unflag every baseline row of a series.

        Raises:
            SQLAlchemyError: Propagated; callers map it to PersistenceError
        """
        await self.session.execute(
            update(MacroFactorModel)
            .where(
                and_(
                    MacroFactorModel.factor_type == factor_type,
                    MacroFactorModel.series_id == series_id,
                    MacroFactorModel.is_baseline.is_(True),
                )
            )
            .values(is_baseline=False)
            .execution_options(synchronize_session="fetch")
        )

    async def _get_period(
        self, factor_type: str, series_id: str, year: int, period: str
    ) -> MacroFactorModel | None:
        result = await self.session.execute(
            select(MacroFactorModel).where(
                and_(
                    MacroFactorModel.factor_type == factor_type,
                    MacroFactorModel.series_id == series_id,
                    MacroFactorModel.year == year,
                    MacroFactorModel.period == period,
                )
            )
        )
        return result.scalar_one_or_none()
