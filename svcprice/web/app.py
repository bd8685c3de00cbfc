"""FastAPI admin API for svcprice."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from svcprice.core.logging import configure_logging
from svcprice.db.connection import close_db
from svcprice.web.routes import admin, health

# Initialize structured logging
configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()


app = FastAPI(
    title="svcprice Admin API",
    description="CPI / regional price parity refresh for service pricing",
    version="1.0.0",
    lifespan=lifespan,
)


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info("request_started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info("request_completed", status_code=response.status_code)
        return response


app.add_middleware(RequestLoggingMiddleware)

app.include_router(health.router)
app.include_router(admin.router)
