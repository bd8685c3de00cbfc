"""Health check API routes."""

from fastapi import APIRouter, status

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check():
    """Liveness check; does not touch the database or external sources."""
    return {"ok": True}
