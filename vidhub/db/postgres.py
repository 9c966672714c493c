"""PostgreSQL backend using a fresh connection per operation.

No pool is kept between calls, which suits short-lived serverless hosts
(Neon, Supabase poolers) at the cost of a connect round trip per operation.
"""

from __future__ import annotations

import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

import asyncpg

from .base import (
    CONFIG_TABLE,
    BackendUnavailableError,
    DatabaseAdapter,
    Rows,
    TransactionCallback,
    TransactionHandle,
)
from .dsn import sanitize_connection_string

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 5
COMMAND_TIMEOUT_SECONDS = 30

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Quote a table name, rejecting anything that is not a plain identifier."""
    if not _IDENTIFIER_PATTERN.match(name or ""):
        raise ValueError(f"Invalid table name: {name!r}")
    return f'"{name}"'


def _encode(value: Any) -> str:
    # A JSON document passed as text is stored as the document, not as a string
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            pass
    return json.dumps(value, ensure_ascii=False)


def _decode(raw: Any) -> Any:
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


class _Statements:
    """SQL text for one table."""

    def __init__(self, table_name: str):
        table = quote_identifier(table_name)
        self.create = f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                config JSONB NOT NULL,
                updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
            )
        """
        self.select = f"SELECT config FROM {table} WHERE id = $1 LIMIT 1"
        self.upsert = f"""
            INSERT INTO {table} (id, config)
            VALUES ($1, $2::jsonb)
            ON CONFLICT (id)
            DO UPDATE SET config = EXCLUDED.config, updated_at = CURRENT_TIMESTAMP
        """
        self.delete = f"DELETE FROM {table} WHERE id = $1"
        self.keys = f"SELECT id FROM {table} ORDER BY id"


async def _select_value(conn: "asyncpg.Connection", sql: _Statements, key: str) -> Optional[Any]:
    row = await conn.fetchrow(sql.select, key)
    return _decode(row["config"]) if row else None


async def _run_query(conn: "asyncpg.Connection", query: str, params: Sequence[Any]) -> Rows:
    records = await conn.fetch(query, *params)
    return [dict(record) for record in records]


class PostgresTransaction(TransactionHandle):
    """Operations bound to the connection of an open transaction."""

    def __init__(self, conn: "asyncpg.Connection", statements: _Statements):
        self._conn = conn
        self._sql = statements

    async def get(self, key: str) -> Optional[Any]:
        return await _select_value(self._conn, self._sql, key)

    async def set(self, key: str, value: Any) -> bool:
        await self._conn.execute(self._sql.upsert, key, _encode(value))
        return True

    async def delete(self, key: str) -> bool:
        await self._conn.execute(self._sql.delete, key)
        return True

    async def list(self) -> List[str]:
        return [row["id"] for row in await self._conn.fetch(self._sql.keys)]

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Rows:
        return await _run_query(self._conn, sql, params or ())


class PostgresAdapter(DatabaseAdapter):
    """PostgreSQL backend storing each key as a JSONB row."""

    backend_type = "postgresql"

    def __init__(
        self,
        connection: Union[str, Dict[str, Any]],
        table_name: str = CONFIG_TABLE,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
    ):
        super().__init__()
        self._connection = connection
        self._table_name = table_name or CONFIG_TABLE
        self._connect_timeout = connect_timeout
        self._sql: Optional[_Statements] = None

    def _describe(self) -> str:
        if isinstance(self._connection, str):
            return sanitize_connection_string(self._connection)
        host = self._connection.get("host", "localhost")
        return f"{host}/{self._connection.get('database', '')}"

    async def _connect(self) -> "asyncpg.Connection":
        if isinstance(self._connection, str):
            return await asyncpg.connect(
                self._connection,
                timeout=self._connect_timeout,
                command_timeout=COMMAND_TIMEOUT_SECONDS,
            )
        return await asyncpg.connect(
            **self._connection,
            timeout=self._connect_timeout,
            command_timeout=COMMAND_TIMEOUT_SECONDS,
        )

    @asynccontextmanager
    async def connection(self) -> AsyncIterator["asyncpg.Connection"]:
        """Open a single-use connection that is closed on every exit path."""
        conn = await self._connect()
        try:
            yield conn
        finally:
            await conn.close()

    def _statements(self) -> _Statements:
        if self._sql is None:
            raise BackendUnavailableError("PostgreSQL backend is not initialized")
        return self._sql

    async def initialize(self) -> bool:
        if self._initialized:
            return True

        logger.info("Initializing PostgreSQL backend: %s", self._describe())
        try:
            statements = _Statements(self._table_name)
            async with self.connection() as conn:
                await conn.fetchval("SELECT 1")
                await conn.execute(statements.create)
        except Exception as exc:
            logger.error("Failed to initialize PostgreSQL backend: %s", exc)
            return False

        self._sql = statements
        self._initialized = True
        logger.info("PostgreSQL backend initialized (table: %s)", self._table_name)
        return True

    async def close(self) -> None:
        # Nothing is pooled; only the readiness flag is reset
        self._initialized = False

    async def _fetch(self, key: str) -> Optional[Any]:
        sql = self._statements()
        async with self.connection() as conn:
            return await _select_value(conn, sql, key)

    async def _store(self, key: str, value: Any) -> None:
        sql = self._statements()
        async with self.connection() as conn:
            await conn.execute(sql.upsert, key, _encode(value))

    async def _remove(self, key: str) -> None:
        sql = self._statements()
        async with self.connection() as conn:
            await conn.execute(sql.delete, key)

    async def _keys(self) -> List[str]:
        sql = self._statements()
        async with self.connection() as conn:
            return [row["id"] for row in await conn.fetch(sql.keys)]

    async def _execute(self, sql: str, params: Sequence[Any]) -> Rows:
        async with self.connection() as conn:
            return await _run_query(conn, sql, params)

    async def _run_transaction(self, callback: TransactionCallback) -> Any:
        # asyncpg rolls back on any exception leaving the block, cancellation included
        statements = self._statements()
        async with self.connection() as conn:
            async with conn.transaction():
                return await callback(PostgresTransaction(conn, statements))


__all__ = ["PostgresAdapter", "PostgresTransaction", "quote_identifier"]
