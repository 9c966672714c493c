"""Health endpoints."""

from __future__ import annotations

import importlib.metadata

from fastapi import APIRouter, Depends

from ...db.engine import Database
from ..dependencies import get_app_database

router = APIRouter(prefix="", tags=["health"])


def _package_version() -> str:
    try:
        return importlib.metadata.version("vidhub")
    except importlib.metadata.PackageNotFoundError:  # pragma: no cover - dev installs
        from ... import __version__

        return __version__


@router.get("/health", summary="API health status")
async def health_status(database: Database = Depends(get_app_database)) -> dict[str, object]:
    return {
        "status": "ok",
        "version": _package_version(),
        "storage": {
            "state": database.state.value,
            "backend": database.backend_type,
        },
    }


__all__ = ["router"]
