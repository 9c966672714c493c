"""Per-request correlation IDs for vidhub's access and rejection logs.

Every response carries ``X-Request-ID``. The browser client may send its own
ID; anything that is not a short token of safe characters is replaced so it
cannot break log lines. Login and config rejections are logged together with
the ID via :func:`log_rejection`.
"""

from __future__ import annotations

import logging
import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

REQUEST_ID_HEADER = "X-Request-ID"

MAX_REQUEST_ID_LENGTH = 128

_SAFE_REQUEST_ID = re.compile(r"[A-Za-z0-9._:-]+")


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


def generate_request_id() -> str:
    return uuid.uuid4().hex


def accept_request_id(raw: Optional[str]) -> str:
    """Keep a client-supplied ID when it is safe to log, otherwise mint one."""
    if raw and len(raw) <= MAX_REQUEST_ID_LENGTH and _SAFE_REQUEST_ID.fullmatch(raw):
        return raw
    return generate_request_id()


def request_id_of(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or "-"


def log_rejection(request: Request, status_code: int, reason: str) -> None:
    """Record why a login or config request was refused."""
    logger.info(
        "Rejected %s %s with %d: %s (request %s)",
        request.method,
        request.url.path,
        status_code,
        reason,
        request_id_of(request),
    )


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestIDLogFilter:
    """Sets ``record.request_id``; "-" for lines logged outside a request."""

    def filter(self, record) -> bool:
        record.request_id = get_request_id() or "-"
        return True


__all__ = [
    "REQUEST_ID_HEADER",
    "RequestIDLogFilter",
    "RequestIDMiddleware",
    "accept_request_id",
    "generate_request_id",
    "get_request_id",
    "log_rejection",
    "request_id_of",
    "request_id_ctx",
]
