"""Backend selection configuration.

Each backend has its own config type; :class:`DatabaseConfig` holds at most
one of each and yields them in priority order (SQL, Postgres, key-value).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Union

from .base import CONFIG_TABLE


@dataclass(frozen=True)
class SqlConfig:
    """MySQL-compatible backend addressed by a compact DSN."""

    dsn: str


@dataclass(frozen=True)
class PostgresConfig:
    """PostgreSQL backend addressed by a URL or a mapping of connect kwargs."""

    connection: Union[str, Dict[str, Any]]
    table_name: str = CONFIG_TABLE


@dataclass(frozen=True)
class KvConfig:
    """Key-value backend.

    ``url`` is a ``redis://`` URL or ``memory://``; ``namespace`` is an
    already constructed client handle and wins over ``url``.
    """

    url: Optional[str] = None
    namespace: Any = None
    prefix: str = ""


BackendConfig = Union[SqlConfig, PostgresConfig, KvConfig]


@dataclass(frozen=True)
class DatabaseConfig:
    """Candidate backends for the facade. All fields are optional."""

    sql: Optional[SqlConfig] = None
    postgres: Optional[PostgresConfig] = None
    kv: Optional[KvConfig] = None

    def candidates(self) -> Iterator[BackendConfig]:
        """Yield configured backends in priority order."""
        if self.sql is not None and self.sql.dsn:
            yield self.sql
        if self.postgres is not None and self.postgres.connection:
            yield self.postgres
        if self.kv is not None and (self.kv.namespace is not None or self.kv.url):
            yield self.kv

    @property
    def is_empty(self) -> bool:
        return next(self.candidates(), None) is None

    @classmethod
    def from_settings(cls, settings: Any) -> "DatabaseConfig":
        """Build a config from a :class:`~vidhub.config.settings.Settings`-like object."""
        sql_dsn = _strip_quotes(getattr(settings, "SQL_DSN", None))
        pg_connection = _strip_quotes(getattr(settings, "PG_CONNECTION_STRING", None))
        kv_url = _strip_quotes(getattr(settings, "KV_URL", None))

        return cls(
            sql=SqlConfig(dsn=sql_dsn) if sql_dsn else None,
            postgres=(
                PostgresConfig(
                    connection=pg_connection,
                    table_name=getattr(settings, "PG_TABLE_NAME", None) or CONFIG_TABLE,
                )
                if pg_connection
                else None
            ),
            kv=(
                KvConfig(url=kv_url, prefix=getattr(settings, "KV_PREFIX", "") or "")
                if kv_url
                else None
            ),
        )


def _strip_quotes(value: Optional[str]) -> Optional[str]:
    """Drop one pair of surrounding single quotes, as written in some .env files."""
    if value is None:
        return None
    value = value.strip()
    if len(value) >= 2 and value.startswith("'") and value.endswith("'"):
        value = value[1:-1]
    return value or None


__all__ = [
    "BackendConfig",
    "DatabaseConfig",
    "KvConfig",
    "PostgresConfig",
    "SqlConfig",
]
