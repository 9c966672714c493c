"""Password checks and device-bound session tokens.

A token is an HS256 JWT carrying ``isAdmin``, the login IP and a hash of
the request headers that identify the browser. It is accepted only from a
request whose headers hash to the same value.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from jose import JWTError, jwt

from ..config.settings import Settings
from ..services.site_config import SiteConfigService

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
UNKNOWN = "unknown"


@dataclass(slots=True)
class SessionClaims:
    """Verified contents of a session token."""

    is_admin: bool
    device_fingerprint: str
    ip: str
    issued_at: Optional[datetime]
    expires_at: Optional[datetime]


def client_ip(request: Request) -> str:
    """Best guess at the client address behind common reverse proxies."""
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip.strip()

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return UNKNOWN


def _fingerprint_fields(request: Request) -> Dict[str, Any]:
    headers = request.headers
    return {
        "userAgent": headers.get("user-agent") or UNKNOWN,
        "acceptLanguage": headers.get("accept-language") or UNKNOWN,
        "acceptEncoding": headers.get("accept-encoding") or UNKNOWN,
        "ip": client_ip(request),
        "platform": headers.get("sec-ch-ua-platform") or UNKNOWN,
        "mobile": headers.get("sec-ch-ua-mobile") or UNKNOWN,
        "secFetch": {
            "site": headers.get("sec-fetch-site") or UNKNOWN,
            "mode": headers.get("sec-fetch-mode") or UNKNOWN,
            "dest": headers.get("sec-fetch-dest") or UNKNOWN,
        },
    }


def device_fingerprint(request: Request) -> str:
    """SHA-256 hex digest of the identifying request headers and client IP.

    These headers are client-controlled, so the binding only stops a token
    from being replayed casually from a different browser.
    """
    encoded = json.dumps(_fingerprint_fields(request), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _constant_time_equals(candidate: str, expected: str) -> bool:
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


async def verify_password(candidate: str, is_admin: bool, service: SiteConfigService) -> bool:
    """Check a login password.

    Admins are checked against ``ADMIN_PASSWORD``; users against the stored
    ``loginPassword``, which only counts while ``enableLogin`` is on.
    """
    if not candidate:
        return False

    if is_admin:
        Settings.refresh_from_env()
        expected = Settings.ADMIN_PASSWORD
    else:
        expected = await service.get_login_password()

    if not expected:
        return False
    return _constant_time_equals(candidate, expected)


def _secret_key() -> str:
    """Get the JWT secret key from settings."""
    Settings.refresh_from_env()
    secret = Settings.LOGIN_JWT_SECRET_KEY
    if not secret:
        raise RuntimeError("Session token secret not configured. Set LOGIN_JWT_SECRET_KEY.")
    return secret


def issue_token(is_admin: bool, request: Request) -> Tuple[str, datetime]:
    """Create a session token bound to the requesting device."""
    secret = _secret_key()
    issued_at = datetime.now(timezone.utc)
    expire_hours = max(1, int(Settings.LOGIN_TOKEN_EXPIRE_HOURS or 24))
    expire = issued_at + timedelta(hours=expire_hours)
    payload = {
        "isAdmin": bool(is_admin),
        "deviceFingerprint": device_fingerprint(request),
        "ip": client_ip(request),
        "iat": issued_at,
        "exp": expire,
    }
    token = jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)
    return token, expire


def _timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return None


def verify_token(token: str, request: Request) -> Optional[SessionClaims]:
    """Return the claims of a valid token presented from the same device.

    Every failure (bad signature, expiry, malformed claims, different
    device, missing secret) yields ``None``.
    """
    if not token:
        return None

    try:
        payload = jwt.decode(token, _secret_key(), algorithms=[JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected session token: %s", exc)
        return None
    except RuntimeError as exc:
        logger.error("Cannot verify session token: %s", exc)
        return None

    fingerprint = payload.get("deviceFingerprint")
    if not isinstance(fingerprint, str):
        logger.debug("Rejected session token without device fingerprint")
        return None
    if not _constant_time_equals(fingerprint, device_fingerprint(request)):
        logger.debug("Rejected session token presented from another device")
        return None

    return SessionClaims(
        is_admin=payload.get("isAdmin") is True,
        device_fingerprint=fingerprint,
        ip=str(payload.get("ip") or UNKNOWN),
        issued_at=_timestamp(payload.get("iat")),
        expires_at=_timestamp(payload.get("exp")),
    )


__all__ = [
    "JWT_ALGORITHM",
    "SessionClaims",
    "client_ip",
    "device_fingerprint",
    "issue_token",
    "verify_password",
    "verify_token",
]
