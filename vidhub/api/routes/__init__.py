"""API route registration helpers."""

from fastapi import FastAPI

from . import auth, config, health, search


def register_routes(app: FastAPI) -> None:
    """Attach all API routers to the provided FastAPI instance."""

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(config.router)
    app.include_router(search.router)


__all__ = ["register_routes"]
