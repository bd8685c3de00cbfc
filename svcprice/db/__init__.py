"""Database layer for svcprice with async SQLAlchemy."""

from svcprice.db.connection import close_db, get_session, get_session_factory, init_db
from svcprice.db.models import (
    Base,
    LocationModel,
    LocationPricingModel,
    MacroFactorModel,
    ServiceModel,
)

__all__ = [
    "Base",
    "MacroFactorModel",
    "LocationModel",
    "ServiceModel",
    "LocationPricingModel",
    "get_session",
    "get_session_factory",
    "init_db",
    "close_db",
]
