"""FastAPI application entry-point for the MDB API control plane."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mdb_engine.errors import (
    ConflictError,
    EngineError,
    NotFoundError,
    PartialFailureError,
    StoreError,
    ValidationError,
)
from mdb_engine.state import create_metadata_tables
from sqlalchemy.exc import SQLAlchemyError

from mdb_api import __version__
from mdb_api.config import APISettings, load_api_settings
from mdb_api.dependencies import dispose_engine, init_engine
from mdb_api.middleware.json_formatter import JSONFormatter
from mdb_api.middleware.logging import RequestLoggingMiddleware
from mdb_api.routers import environments, health, records, tables, users

logger = logging.getLogger(__name__)

# HTTP status per engine error kind; unknown kinds fall back to 500.
ERROR_STATUS: dict[str, int] = {
    ValidationError.kind: 400,
    NotFoundError.kind: 404,
    ConflictError.kind: 409,
    StoreError.kind: 502,
    PartialFailureError.kind: 500,
}


def configure_logging(settings: APISettings) -> None:
    """Install single-line JSON logging on the root logger when enabled."""
    if not settings.structured_logging:
        return
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    logger.info("Structured JSON logging enabled")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup the async engine is initialised and the metadata stores
    (users, owner index, environments, descriptors) are created if they do
    not exist.  On shutdown the connection pool is disposed.
    """
    settings = load_api_settings()
    configure_logging(settings)

    engine = init_engine(settings)
    is_local = settings.database_url.startswith("sqlite")
    logger.info("Database engine initialised (%s)", "local" if is_local else "postgres")

    await create_metadata_tables(engine)

    yield

    await dispose_engine()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = load_api_settings()

    app = FastAPI(
        title="MDB API",
        description="Multi-tenant schema and metadata control plane.",
        version=__version__,
        lifespan=lifespan,
    )

    # -- Middleware (outermost first) ----------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID", "Accept"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # -- Routers -------------------------------------------------------------

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(environments.router, prefix="/api/v1")
    app.include_router(tables.router, prefix="/api/v1")
    app.include_router(records.router, prefix="/api/v1")

    # Infrastructure endpoints, outside versioning.
    app.include_router(health.readiness_router)

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(EngineError)
    async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
        status_code = ERROR_STATUS.get(exc.kind, 500)
        if status_code >= 500:
            logger.error("%s on %s: %s", exc.kind, request.url.path, exc.message, extra={"error": exc.to_dict()})
        else:
            logger.info("%s on %s: %s", exc.kind, request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal database error", "kind": "store_error"})

    return app


# Module-level application instance used by ``uvicorn mdb_api.main:app``.
app = create_app()
