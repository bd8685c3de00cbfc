"""Trigger recomputation of location_pricing.

The pricing formula lives in the database (recompute_location_pricing);
this module only invokes it and reads back the resulting row count.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from svcprice.db.models import LocationPricingModel
from svcprice.pipeline.errors import PersistenceError

logger = logging.getLogger(__name__)

# (session, location scope) -> None; scope None means every location
RecomputeFn = Callable[[AsyncSession, Optional[int]], Awaitable[None]]


async def call_recompute_function(session: AsyncSession, scope: Optional[int]) -> None:
    """Invoke the recompute_location_pricing() database function."""
    await session.execute(text("SELECT recompute_location_pricing(:scope)"), {"scope": scope})


class PricingRecomputeTrigger:
    """Runs the pricing recompute inside the caller's transaction."""

    def __init__(self, session: AsyncSession, recompute: RecomputeFn | None = None):
        """Initialize trigger.

        Args:
            session: Active async SQLAlchemy session (the run's transaction)
            recompute: Recompute implementation; defaults to the database function
        """
        self.session = session
        self.recompute = recompute or call_recompute_function

    async def recompute_all(self) -> int:
        """Recompute every (service, location) estimate.

        Returns:
            Total number of location_pricing rows afterwards

        Raises:
            PersistenceError: If the recompute call or the count fails
        """
        try:
            await self.recompute(self.session, None)
            result = await self.session.execute(
                select(func.count()).select_from(LocationPricingModel)
            )
            total = int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Pricing recompute failed: {exc}") from exc

        logger.info("Computed %d location/service estimates", total)
        return total
