"""API middleware."""

from .request_id import (
    REQUEST_ID_HEADER,
    RequestIDLogFilter,
    RequestIDMiddleware,
    get_request_id,
    log_rejection,
)

__all__ = [
    "REQUEST_ID_HEADER",
    "RequestIDLogFilter",
    "RequestIDMiddleware",
    "get_request_id",
    "log_rejection",
]
