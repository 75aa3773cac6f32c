from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

from campus_core.api.health import router as health_router
from campus_core.api.identity import router as identity_router
from campus_core.api.licenses import router as licenses_router
from campus_core.api.metrics_endpoint import router as metrics_router
from campus_core.api.orgs import router as orgs_router
from campus_core.api.staff import router as staff_router
from campus_core.api.stats import router as stats_router
from campus_core.core.config import SETTINGS
from campus_core.core.logging import setup_logging
from campus_core.db.engine import lifespan_db
from campus_core.db.redis import lifespan_redis
from campus_core.middleware.metrics import MetricsMiddleware
from campus_core.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)

# PostgreSQL lock_not_available: a seat claim waited out LOCK_TIMEOUT.
LOCK_NOT_AVAILABLE = "55P03"


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="campus-core",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last-added runs first: RequestContext -> Metrics -> CORS -> route handler,
# so every request has a request ID before metrics are recorded.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(identity_router)
app.include_router(orgs_router)
app.include_router(staff_router)
app.include_router(licenses_router)
app.include_router(stats_router)


def _sqlstate(exc: DBAPIError) -> str | None:
    return getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)


@app.exception_handler(DBAPIError)
async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    """Contended license rows answer 503 + Retry-After; anything else is a 500."""
    if _sqlstate(exc) == LOCK_NOT_AVAILABLE:
        logger.warning("Lock timeout on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "License is busy, retry shortly"},
            headers={"Retry-After": "1"},
        )
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


logger.info(
    "campus-core started  env=%s log_level=%s port=%d docs=%s impersonation=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    "on" if SETTINGS.impersonation_enabled else "off",
)
