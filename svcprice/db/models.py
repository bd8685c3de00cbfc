"""SQLAlchemy async database models for svcprice.

Maps to the PostgreSQL pricing schema. Migrations and seed data live outside
this package; these models describe the columns the refresh pipeline reads
and writes.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class MacroFactorModel(Base):
    """Economic index reading (CPI, ...) for one series period.

    Exactly one row per (factor_type, series_id) may carry is_baseline=true;
    the pipeline enforces this when it establishes a baseline.
    """

    __tablename__ = "macro_factors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    factor_type: Mapped[str] = mapped_column(Text, nullable=False)
    series_id: Mapped[str] = mapped_column(Text, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[str] = mapped_column(Text, nullable=False)  # M01..M12, M13 = annual
    value: Mapped[float] = mapped_column(Float, nullable=False)
    is_baseline: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "factor_type", "series_id", "year", "period", name="uq_macro_factor_period"
        ),
        Index("idx_macro_factor_baseline", "factor_type", "series_id", "is_baseline"),
    )


class LocationModel(Base):
    """US state or city that estimates are published for."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    state_code: Mapped[str] = mapped_column(Text, nullable=False)
    state_name: Mapped[str] = mapped_column(Text, nullable=False)
    city_name: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Regional price parity (100 = national average)
    rpp_index: Mapped[float | None] = mapped_column(Float)
    rpp_year: Mapped[int | None] = mapped_column(Integer)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("type IN ('state', 'city')", name="check_location_type_valid"),
        CheckConstraint(
            "(rpp_index IS NULL AND rpp_year IS NULL) "
            "OR (rpp_index IS NOT NULL AND rpp_year IS NOT NULL)",
            name="check_rpp_fields_paired",
        ),
        Index("idx_locations_state_name", "type", "state_name"),
    )


class ServiceModel(Base):
    """Service catalog entry (seeded externally)."""

    __tablename__ = "services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)


class LocationPricingModel(Base):
    """Computed price range for one (service, location) pair.

    Written only by the external recompute_location_pricing() routine.
    """

    __tablename__ = "location_pricing"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    service_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False
    )
    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False
    )

    low: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    typical: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    high: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Inputs used for the computation
    cpi_factor: Mapped[float | None] = mapped_column(Float)
    rpp_factor: Mapped[float | None] = mapped_column(Float)

    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("service_id", "location_id", name="uq_location_pricing_pair"),
    )
