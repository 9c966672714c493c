"""Connection-string parsing for the SQL backend.

The SQL backend is configured with a compact authority-style DSN::

    user:password@host:port/database
    user:password@tcp(host:port)/database

Splitting is positional and deliberately lenient: a malformed DSN produces
garbled fields and fails later when the driver tries to connect.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

# Pool defaults applied to every parsed DSN
DEFAULT_CONNECTION_LIMIT = 10
DEFAULT_MAX_IDLE = 10
DEFAULT_QUEUE_LIMIT = 0


@dataclass(frozen=True)
class ConnectionParams:
    """Discrete connection fields parsed from a DSN."""

    host: str
    port: Optional[int]
    user: str
    password: str
    database: str
    connection_limit: int = DEFAULT_CONNECTION_LIMIT
    max_idle: int = DEFAULT_MAX_IDLE
    queue_limit: int = DEFAULT_QUEUE_LIMIT
    wait_for_connections: bool = True

    def driver_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments understood by ``mysql.connector``."""
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "user": self.user,
            "password": self.password,
            "database": self.database,
        }
        if self.port is not None:
            kwargs["port"] = self.port
        return kwargs


def _parse_port(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def parse_dsn(dsn: str) -> ConnectionParams:
    """Parse ``user:password@host:port/database`` into :class:`ConnectionParams`.

    The caller guarantees exactly one ``@``. The first ``:`` splits user from
    password, the first ``/`` after the ``@`` splits the host segment from the
    database name and the last ``:`` of the host segment splits host from port.
    """
    auth, _, rest = dsn.partition("@")
    user, _, password = auth.partition(":")
    host_segment, _, database = rest.partition("/")

    # Go-style DSNs wrap the address as tcp(host:port)
    host_segment = host_segment.replace("tcp(", "").replace(")", "")

    if ":" in host_segment:
        host, _, raw_port = host_segment.rpartition(":")
        port = _parse_port(raw_port)
    else:
        host, port = host_segment, None

    return ConnectionParams(
        host=host,
        port=port,
        user=user,
        password=password,
        database=database,
    )


def sanitize_connection_string(conn_str: str) -> str:
    """Mask the password of a DSN or URL for logging.

    Everything between the first ``:`` of the credentials and the last ``@``
    is replaced, so passwords containing ``:`` are hidden entirely.
    """
    scheme, sep, rest = conn_str.partition("://")
    if not sep:
        scheme, rest = "", conn_str
    credentials, at, location = rest.rpartition("@")
    if not at:
        return conn_str
    user, colon, _ = credentials.partition(":")
    if not colon:
        return conn_str
    prefix = f"{scheme}://" if sep else ""
    return f"{prefix}{user}:***@{location}"


__all__ = [
    "ConnectionParams",
    "DEFAULT_CONNECTION_LIMIT",
    "DEFAULT_MAX_IDLE",
    "DEFAULT_QUEUE_LIMIT",
    "parse_dsn",
    "sanitize_connection_string",
]
