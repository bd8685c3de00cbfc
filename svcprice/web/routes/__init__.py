"""svcprice web route modules.

Each module exports a `router` object (APIRouter instance); the app in
svcprice.web.app includes them.

Usage:
    from svcprice.web.routes import admin
    app.include_router(admin.router)
"""

from svcprice.web.routes import admin, health

__all__ = [
    "admin",  # Refresh trigger
    "health",
]
