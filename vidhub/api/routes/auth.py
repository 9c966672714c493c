"""Password login endpoint issuing device-bound session tokens."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...services.site_config import SiteConfigService
from ..auth import issue_token, verify_password
from ..dependencies import get_config_service
from ..middleware.request_id import log_rejection
from ..schemas import LoginRequest, LoginResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/verify", response_model=LoginResponse, summary="Verify a password and issue a token")
async def verify_login(
    payload: LoginRequest,
    request: Request,
    service: SiteConfigService = Depends(get_config_service),
) -> LoginResponse:
    if not payload.password:
        log_rejection(request, status.HTTP_400_BAD_REQUEST, "empty password")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password is required")

    role = "admin" if payload.is_admin else "user"
    if not await verify_password(payload.password, payload.is_admin, service):
        log_rejection(request, status.HTTP_401_UNAUTHORIZED, f"incorrect {role} password")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect password")

    try:
        token, _ = issue_token(payload.is_admin, request)
    except RuntimeError as exc:
        logger.error("Cannot issue session token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Login is not configured"
        ) from exc

    logger.info("Issued %s session token", role)
    return LoginResponse(success=True, token=token)


__all__ = ["router"]
