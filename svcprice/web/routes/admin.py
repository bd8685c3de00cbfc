"""Administrative routes for svcprice.

Routes:
- POST /admin/refresh - Refresh CPI/RPP data and recompute location pricing

Requests must carry an X-Admin-Key header matching ADMIN_API_KEY. The
refresh runs synchronously; callers must not overlap invocations.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse

from svcprice.config import get_config
from svcprice.pipeline.errors import RefreshError
from svcprice.pipeline.orchestrator import run_refresh

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _authorized(admin_key: str | None) -> bool:
    expected = get_config().admin_api_key
    if not expected or not admin_key:
        return False
    return secrets.compare_digest(admin_key.encode(), expected.encode())


@router.post("/refresh")
async def refresh_pricing_data(
    x_admin_key: str | None = Header(default=None, alias="X-Admin-Key"),
):
    """Run a full pricing data refresh.

    Returns the run summary on success; on failure nothing was written.
    """
    if not _authorized(x_admin_key):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        run = await run_refresh()
    except (RefreshError, ValueError) as e:
        logger.error("Admin refresh failed: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})

    return {
        "ok": True,
        "message": "Pricing data refreshed successfully",
        "stats": run.to_dict(),
    }
