"""Site configuration endpoints."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...services.site_config import SiteConfigService
from ..auth import SessionClaims
from ..dependencies import (
    bearer_token,
    check_session,
    get_config_service,
    require_admin,
    require_session,
)
from ..middleware.request_id import log_rejection
from ..schemas import MessageResponse, SiteConfig

router = APIRouter(prefix="/api", tags=["config"])


@router.get("/home/config", summary="Public configuration for the home page")
async def home_config(
    request: Request,
    token: Optional[str] = Depends(bearer_token),
    service: SiteConfigService = Depends(get_config_service),
) -> Dict[str, Any]:
    config = await service.get_public_config()
    if not config.get("enableLogin"):
        return config

    check_session(request, token)
    return config


@router.get("/config", summary="Public configuration for logged-in clients")
async def session_config(
    _: SessionClaims = Depends(require_session),
    service: SiteConfigService = Depends(get_config_service),
) -> Dict[str, Any]:
    return await service.get_public_config()


@router.get("/admin/config", summary="Full configuration including the login password")
async def admin_get_config(
    _: SessionClaims = Depends(require_admin),
    service: SiteConfigService = Depends(get_config_service),
) -> Dict[str, Any]:
    return await service.get_config()


@router.post("/admin/config", response_model=MessageResponse, summary="Replace the configuration")
async def admin_update_config(
    payload: SiteConfig,
    request: Request,
    _: SessionClaims = Depends(require_admin),
    service: SiteConfigService = Depends(get_config_service),
) -> MessageResponse:
    result = await service.update_config(payload.to_record())
    if not result.success:
        log_rejection(request, status.HTTP_500_INTERNAL_SERVER_ERROR, result.message)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.message)
    return MessageResponse(message=result.message)


__all__ = ["router"]
