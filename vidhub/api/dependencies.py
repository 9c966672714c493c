"""Shared dependency helpers for the FastAPI surface."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from ..db.engine import Database, get_database
from ..services.site_config import SiteConfigService
from .auth import SessionClaims, verify_token
from .middleware.request_id import log_rejection

oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="/api/auth/verify", auto_error=False)

# OAuth2PasswordBearer matches the scheme in any case; only this exact spelling is accepted
BEARER_PREFIX = "Bearer "


def get_app_database(request: Request) -> Database:
    """Facade bound at startup, or the process-wide one outside the app lifecycle."""
    database = getattr(request.app.state, "database", None)
    return database if database is not None else get_database()


def get_config_service(request: Request) -> SiteConfigService:
    service = getattr(request.app.state, "config_service", None)
    if service is None:
        from ..config.settings import Settings

        service = SiteConfigService(get_app_database(request), Settings)
        request.app.state.config_service = service
    return service


def _unauthorized(request: Request, detail: str) -> HTTPException:
    log_rejection(request, status.HTTP_401_UNAUTHORIZED, detail)
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def bearer_token(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme_optional),
) -> Optional[str]:
    """Token from ``Authorization: Bearer <token>``, or ``None``."""
    if not token or not request.headers.get("Authorization", "").startswith(BEARER_PREFIX):
        return None
    return token


def check_session(request: Request, token: Optional[str]) -> SessionClaims:
    """Claims of a valid, device-bound token; raises 401 otherwise."""
    if not token:
        raise _unauthorized(request, "Not logged in")

    claims = verify_token(token, request)
    if claims is None:
        raise _unauthorized(request, "Session expired or used from another device")
    return claims


async def require_session(
    request: Request,
    token: Optional[str] = Depends(bearer_token),
) -> SessionClaims:
    return check_session(request, token)


async def require_admin(
    request: Request,
    claims: SessionClaims = Depends(require_session),
) -> SessionClaims:
    if not claims.is_admin:
        log_rejection(request, status.HTTP_403_FORBIDDEN, "not an admin session")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return claims


__all__ = [
    "bearer_token",
    "check_session",
    "get_app_database",
    "get_config_service",
    "require_admin",
    "require_session",
]
