"""FastAPI application entry-point for the ClaimPilot API."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pilot_engine.config import load_settings
from pilot_engine.errors import LimitExceededError, PilotError
from sqlalchemy.exc import SQLAlchemyError

from pilot_api import __version__
from pilot_api.config import APISettings, load_api_settings
from pilot_api.dependencies import dispose_services, init_services
from pilot_api.middleware.logging import CorrelationFilter, RequestLoggingMiddleware
from pilot_api.routers import admin, cases, health, payments, usage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def _configure_structured_logging() -> None:
    from pilot_api.middleware.json_formatter import JSONFormatter

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    handler.addFilter(CorrelationFilter())
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup the record store is opened (tables are created for the SQL
    store) and, unless disabled, the lifecycle sweeper is started.  On
    shutdown the sweeper is stopped, buffered billing events are flushed,
    and the engine pool is disposed.
    """
    settings: APISettings = load_api_settings()

    if settings.structured_logging:
        _configure_structured_logging()
        logger.info("Structured JSON logging enabled")

    engine_settings = load_settings()
    services = await init_services(engine_settings)
    logger.info("Engine services initialised (store=%s)", engine_settings.state_store_type.value)

    if settings.sweeper_enabled:
        await services.sweeper.start()

    yield

    await dispose_services()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = load_api_settings()

    app = FastAPI(
        title="ClaimPilot API",
        description="Denial-review pilot: cases, usage metering, trial and subscription lifecycle.",
        version=__version__,
        lifespan=lifespan,
    )

    # -- Middleware (outermost first) ----------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-Tenant-ID",
            "X-Admin-Token",
            "X-Correlation-ID",
            "Accept",
        ],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # -- Routers -------------------------------------------------------------

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(cases.router, prefix="/api/v1")
    app.include_router(usage.router, prefix="/api/v1")
    app.include_router(payments.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(PilotError)
    async def pilot_error_handler(request: Request, exc: PilotError) -> JSONResponse:
        request.state.error_code = exc.code
        content: dict[str, Any] = {"detail": str(exc), "code": exc.code}
        if isinstance(exc, LimitExceededError) and exc.limit is not None:
            content["limit"] = exc.limit.value
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        # Full error goes to the log; the client gets a safe message.
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": "Invalid request"})

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal database error"})

    return app


# Module-level application instance used by ``uvicorn pilot_api.main:app``.
app = create_app()
