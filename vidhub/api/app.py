"""FastAPI application factory for the VidHub API."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config.settings import Settings
from ..db.config import DatabaseConfig
from ..db.engine import Database, DatabaseState, get_database
from ..services.site_config import SiteConfigService
from ..utils.http_client import cleanup_http_client
from .middleware.request_id import RequestIDMiddleware
from .routes import register_routes

logger = logging.getLogger(__name__)

DEFAULT_DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:3001",
    "http://127.0.0.1:5173",
]


def _cors_origins() -> list[str]:
    if Settings.API_CORS_ORIGINS:
        return list(Settings.API_CORS_ORIGINS)
    if Settings.DEV_MODE:
        logger.warning("CORS: Allowing all origins (DEV_MODE=1). Set API_CORS_ORIGINS for production.")
        return ["*"]
    logger.info("CORS: Using default development origins. Set API_CORS_ORIGINS for production.")
    return list(DEFAULT_DEV_ORIGINS)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # The browser client reads failures from an ``error`` field
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def create_app(
    database: Optional[Database] = None,
    extra_app_kwargs: dict[str, Any] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``database`` defaults to the process-wide facade; it is bound on startup
    and closed on shutdown.
    """

    # Reload settings in case env vars changed before app startup
    Settings.refresh_from_env()

    app_kwargs: dict[str, Any] = {
        "title": "VidHub API",
        "version": __version__,
        "docs_url": "/docs",
        "redoc_url": "/redoc",
        "root_path": Settings.API_ROOT_PATH or "",
    }
    if extra_app_kwargs:
        app_kwargs.update(extra_app_kwargs)

    app = FastAPI(**app_kwargs)

    app.state.database = database if database is not None else get_database()
    app.state.config_service = SiteConfigService(app.state.database, Settings)

    cors_origins = _cors_origins()
    # Credentials cannot be combined with a wildcard origin
    allow_creds = "*" not in cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_creds,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(StarletteHTTPException, _http_error_handler)

    register_routes(app)

    @app.on_event("startup")
    async def _startup() -> None:
        logger.info("Starting VidHub API on %s:%s", Settings.API_HOST, Settings.API_PORT)
        Settings.log_config()
        if not Settings.validate():
            logger.warning("Login endpoints will reject requests until the settings above are fixed")
        db: Database = app.state.database
        if db.state is not DatabaseState.UNINITIALIZED:
            return
        if not Settings.storage_configured():
            logger.warning("No storage backend configured; serving default configuration")
            return
        if not await db.initialize(DatabaseConfig.from_settings(Settings)):
            logger.warning("Serving default configuration; no storage backend is available")

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        logger.info("Shutting down VidHub API")
        try:
            await app.state.database.close()
        except Exception as exc:  # pragma: no cover - logging only
            logger.debug("Failed to close database cleanly: %s", exc)
        await cleanup_http_client()

    return app


# Create app instance for uvicorn
app = create_app()

__all__ = ["create_app", "app"]
