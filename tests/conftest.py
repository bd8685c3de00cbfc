"""Pytest configuration and fixtures for svcprice tests.

Provides an in-memory database seeded with US states, a small service
catalog and a stand-in for the recompute_location_pricing() routine.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from svcprice.config import reset_config
from svcprice.db.models import Base, LocationModel, LocationPricingModel, ServiceModel

US_STATES: list[tuple[str, str]] = [
    ("AL", "Alabama"), ("AK", "Alaska"), ("AZ", "Arizona"), ("AR", "Arkansas"),
    ("CA", "California"), ("CO", "Colorado"), ("CT", "Connecticut"), ("DE", "Delaware"),
    ("FL", "Florida"), ("GA", "Georgia"), ("HI", "Hawaii"), ("ID", "Idaho"),
    ("IL", "Illinois"), ("IN", "Indiana"), ("IA", "Iowa"), ("KS", "Kansas"),
    ("KY", "Kentucky"), ("LA", "Louisiana"), ("ME", "Maine"), ("MD", "Maryland"),
    ("MA", "Massachusetts"), ("MI", "Michigan"), ("MN", "Minnesota"), ("MS", "Mississippi"),
    ("MO", "Missouri"), ("MT", "Montana"), ("NE", "Nebraska"), ("NV", "Nevada"),
    ("NH", "New Hampshire"), ("NJ", "New Jersey"), ("NM", "New Mexico"), ("NY", "New York"),
    ("NC", "North Carolina"), ("ND", "North Dakota"), ("OH", "Ohio"), ("OK", "Oklahoma"),
    ("OR", "Oregon"), ("PA", "Pennsylvania"), ("RI", "Rhode Island"), ("SC", "South Carolina"),
    ("SD", "South Dakota"), ("TN", "Tennessee"), ("TX", "Texas"), ("UT", "Utah"),
    ("VT", "Vermont"), ("VA", "Virginia"), ("WA", "Washington"), ("WV", "West Virginia"),
    ("WI", "Wisconsin"), ("WY", "Wyoming"),
]

SERVICES: list[tuple[str, str, str]] = [
    ("house-cleaning", "House cleaning", "visit"),
    ("lawn-mowing", "Lawn mowing", "visit"),
    ("plumber-hourly", "Plumber", "hour"),
]


async def fake_recompute(session: AsyncSession, scope: int | None) -> None:
    """Rebuild location_pricing for every active location that has an RPP value."""
    await session.execute(delete(LocationPricingModel))

    services = (await session.execute(select(ServiceModel))).scalars().all()
    locations = (
        await session.execute(
            select(LocationModel).where(
                LocationModel.is_active.is_(True),
                LocationModel.rpp_index.is_not(None),
            )
        )
    ).scalars().all()

    for service in services:
        for location in locations:
            session.add(
                LocationPricingModel(
                    service_id=service.id,
                    location_id=location.id,
                    low=Decimal("80.00"),
                    typical=Decimal("100.00"),
                    high=Decimal("120.00"),
                    rpp_factor=location.rpp_index / 100,
                )
            )
    await session.flush()


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def us_states() -> list[tuple[str, str]]:
    """(state_code, state_name) for the 50 states."""
    return list(US_STATES)


@pytest_asyncio.fixture()
async def session_factory():
    """Session factory bound to a fresh in-memory database."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def seeded_factory(session_factory):
    """Session factory whose database holds the states, one city and the services."""
    async with session_factory() as session:
        for code, name in US_STATES:
            session.add(
                LocationModel(
                    slug=name.lower().replace(" ", "-"),
                    type="state",
                    state_code=code,
                    state_name=name,
                )
            )
        session.add(
            LocationModel(
                slug="austin-tx",
                type="city",
                state_code="TX",
                state_name="Texas",
                city_name="Austin",
            )
        )
        for key, name, unit in SERVICES:
            session.add(ServiceModel(key=key, name=name, unit=unit))
        await session.commit()

    return session_factory


@pytest_asyncio.fixture()
async def db_session(seeded_factory) -> AsyncSession:
    """Session on the seeded database."""
    session = seeded_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def recompute():
    """Stand-in for the recompute_location_pricing() database routine."""
    return fake_recompute
