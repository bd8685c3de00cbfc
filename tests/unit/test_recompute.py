"""Unit tests for the pricing recompute trigger."""

from __future__ import annotations

import pytest

from svcprice.pipeline.errors import PersistenceError
from svcprice.pipeline.recompute import PricingRecomputeTrigger
from svcprice.pipeline.location_sync import LocationIndexSynchronizer
from svcprice.pipeline.types import RppRow


@pytest.mark.asyncio
async def test_recompute_all_returns_row_count(db_session, recompute):
    rows = [
        RppRow(geo_name="California", data_value="112.6", year=2024),
        RppRow(geo_name="Texas", data_value="97.3", year=2024),
    ]
    await LocationIndexSynchronizer(db_session).apply_state_indices(rows, 2024)

    total = await PricingRecomputeTrigger(db_session, recompute).recompute_all()

    # 2 states x 3 services
    assert total == 6


@pytest.mark.asyncio
async def test_recompute_all_passes_unrestricted_scope(db_session):
    scopes = []

    async def recompute(session, scope):
        scopes.append(scope)

    total = await PricingRecomputeTrigger(db_session, recompute).recompute_all()

    assert scopes == [None]
    assert total == 0


@pytest.mark.asyncio
async def test_missing_database_function_raises_persistence_error(db_session):
    # SQLite has no recompute_location_pricing(); the default call must fail cleanly
    with pytest.raises(PersistenceError):
        await PricingRecomputeTrigger(db_session).recompute_all()
