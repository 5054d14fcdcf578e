"""
FastAPI application factory for the operator API.

Exposes alert listing and lifecycle transitions, digest acknowledgement
links and the health probe. Store outages surface as 503 so callers can
retry; everything else unexpected is a 500.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from aquaguard import __version__
from aquaguard.api.dependencies import cleanup_dependencies
from aquaguard.api.routes import alerts, digests, health
from aquaguard.resilience.errors import ErrorAction, classify

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("AquaGuard API starting", version=__version__)
    yield
    await cleanup_dependencies()
    logger.info("AquaGuard API stopped")


def _request_id(request: Request) -> str:
    return (
        request.headers.get(REQUEST_ID_HEADER)
        or request.headers.get("X-Correlation-ID")
        or uuid.uuid4().hex
    )


def create_app() -> FastAPI:
    """Build the application with routers, request logging and error mapping."""
    app = FastAPI(
        title="AquaGuard API",
        description="Water-quality alerting: alert lifecycle and digest acknowledgement.",
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Dependency health"},
            {"name": "alerts", "description": "Alert listing and lifecycle transitions"},
            {"name": "digests", "description": "Digest acknowledgement links"},
        ],
    )

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        request_id = _request_id(request)
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        operation = f"{request.method} {request.url.path}"
        if classify(exc, {"operation": operation}) == ErrorAction.RETRY:
            return JSONResponse(
                status_code=503,
                content={"detail": "Service temporarily unavailable", "error_type": "unavailable"},
                headers={"Retry-After": "5"},
            )
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(alerts.router, tags=["alerts"])
    app.include_router(digests.router, tags=["digests"])

    return app
