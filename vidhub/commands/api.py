"""CLI command helpers for running the FastAPI service."""

from __future__ import annotations

import logging

import uvicorn

from ..api.app import create_app

logger = logging.getLogger(__name__)


async def run_api_server(
    host: str, port: int, reload: bool = False, log_level: str = "info"
) -> int:
    """Launch the FastAPI server with uvicorn."""

    if reload:
        # uvicorn only reloads when given an import string
        target = "vidhub.api.app:create_app"
    else:
        target = create_app

    config = uvicorn.Config(  # type: ignore[arg-type]
        target,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
        factory=True,
    )
    server = uvicorn.Server(config)

    try:
        await server.serve()
    except Exception as exc:  # pragma: no cover - logging only
        logger.exception("API server crashed: %s", exc)
        return 1

    return 0


__all__ = ["run_api_server"]
