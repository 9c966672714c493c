"""MySQL backend holding one connection pool for the process lifetime."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence

import mysql.connector

from .base import (
    CONFIG_KEY,
    CONFIG_TABLE,
    BackendUnavailableError,
    DatabaseAdapter,
    Rows,
    TransactionCallback,
    TransactionHandle,
)
from .dsn import ConnectionParams, parse_dsn, sanitize_connection_string

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10


def _decode(raw: Any) -> Any:
    """JSON columns come back as text (or bytes with the C extension)."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw


def _create_table(conn: Any, table: str) -> None:
    cursor = conn.cursor()
    try:
        cursor.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id INT PRIMARY KEY AUTO_INCREMENT,
                config JSON NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP
            )
            """
        )
    finally:
        cursor.close()


def _select_value(conn: Any, table: str, key: str) -> Optional[Any]:
    cursor = conn.cursor(dictionary=True)
    try:
        if key == CONFIG_KEY:
            # The singleton record is always the newest row
            cursor.execute(f"SELECT config FROM {table} ORDER BY id DESC LIMIT 1")
        else:
            cursor.execute(f"SELECT config FROM {table} WHERE id = %s LIMIT 1", (key,))
        row = cursor.fetchone()
    finally:
        cursor.close()
    return _decode(row["config"]) if row else None


def _write_value(conn: Any, table: str, key: str, value: Any) -> None:
    """Update the row for ``key`` in place, or insert it. Caller owns the transaction."""
    payload = json.dumps(value, ensure_ascii=False)
    cursor = conn.cursor(dictionary=True)
    try:
        if key == CONFIG_KEY:
            cursor.execute(f"SELECT id FROM {table} ORDER BY id DESC LIMIT 1 FOR UPDATE")
            row = cursor.fetchone()
            if row:
                cursor.execute(
                    f"UPDATE {table} SET config = %s WHERE id = %s", (payload, row["id"])
                )
            else:
                cursor.execute(f"INSERT INTO {table} (id, config) VALUES (1, %s)", (payload,))
        else:
            cursor.execute(f"SELECT id FROM {table} WHERE id = %s LIMIT 1 FOR UPDATE", (key,))
            row = cursor.fetchone()
            if row:
                cursor.execute(f"UPDATE {table} SET config = %s WHERE id = %s", (payload, key))
            else:
                cursor.execute(f"INSERT INTO {table} (id, config) VALUES (%s, %s)", (key, payload))
    finally:
        cursor.close()


def _store_value(conn: Any, table: str, key: str, value: Any) -> None:
    conn.start_transaction()
    try:
        _write_value(conn, table, key, value)
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _delete_value(conn: Any, table: str, key: str) -> None:
    cursor = conn.cursor()
    try:
        if key == CONFIG_KEY:
            cursor.execute(f"DELETE FROM {table} ORDER BY id DESC LIMIT 1")
        else:
            cursor.execute(f"DELETE FROM {table} WHERE id = %s", (key,))
    finally:
        cursor.close()


def _list_keys(conn: Any, table: str) -> List[str]:
    cursor = conn.cursor()
    try:
        cursor.execute(f"SELECT id FROM {table} ORDER BY id")
        return [str(row[0]) for row in cursor.fetchall()]
    finally:
        cursor.close()


def _run_query(conn: Any, sql: str, params: Sequence[Any]) -> Rows:
    cursor = conn.cursor(dictionary=True)
    try:
        cursor.execute(sql, tuple(params))
        if not cursor.with_rows:
            return []
        return [dict(row) for row in cursor.fetchall()]
    finally:
        cursor.close()


class ConnectionPool:
    """Bounded pool of blocking ``mysql.connector`` connections.

    At most ``connection_limit`` connections are borrowed at once; callers
    beyond that wait for a release. A non-zero ``queue_limit`` caps how many
    callers may wait at a time; 0 leaves the queue unbounded. Up to
    ``max_idle`` returned connections are kept for reuse, the rest are closed.
    """

    def __init__(self, params: ConnectionParams, connect_timeout: int = CONNECT_TIMEOUT_SECONDS):
        self._params = params
        self._connect_timeout = connect_timeout
        self._slots = asyncio.Semaphore(params.connection_limit)
        self._idle: asyncio.Queue[Any] = asyncio.Queue(maxsize=max(params.max_idle, 1))
        self._closed = False
        self.total_connections = 0
        self.waiting = 0

    async def _create_connection(self) -> Any:
        conn = await asyncio.to_thread(
            mysql.connector.connect,
            **self._params.driver_kwargs(),
            connection_timeout=self._connect_timeout,
            autocommit=True,
        )
        self.total_connections += 1
        return conn

    async def _checkout(self) -> Any:
        try:
            conn = self._idle.get_nowait()
        except asyncio.QueueEmpty:
            return await self._create_connection()

        try:
            await asyncio.to_thread(conn.ping, True, 1, 0)
        except Exception as exc:
            logger.debug("Dropping stale MySQL connection: %s", exc)
            await asyncio.to_thread(conn.close)
            return await self._create_connection()
        return conn

    async def _checkin(self, conn: Any) -> None:
        if not self._closed:
            try:
                self._idle.put_nowait(conn)
                return
            except asyncio.QueueFull:
                pass
        await self._discard(conn)

    async def _discard(self, conn: Any) -> None:
        try:
            await asyncio.to_thread(conn.close)
        except Exception as exc:
            logger.debug("Error closing MySQL connection: %s", exc)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        """Borrow a connection; it is returned on every exit path."""
        if self._closed:
            raise RuntimeError("Connection pool is closed")

        if not self._params.wait_for_connections and self._slots.locked():
            raise RuntimeError("Connection pool exhausted")

        queue_limit = self._params.queue_limit
        if queue_limit and self._slots.locked() and self.waiting >= queue_limit:
            raise RuntimeError("Connection queue limit reached")

        self.waiting += 1
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self._connect_timeout)
        except asyncio.TimeoutError:
            raise RuntimeError("Timed out waiting for a MySQL connection") from None
        finally:
            self.waiting -= 1

        conn = None
        reusable = False
        try:
            conn = await self._checkout()
            try:
                yield conn
            except Exception:
                # Driver errors leave the connection usable; cancellation does not
                reusable = True
                raise
            reusable = True
        finally:
            if conn is not None:
                if reusable:
                    await self._checkin(conn)
                else:
                    await self._discard(conn)
            self._slots.release()

    async def close(self) -> None:
        self._closed = True
        while not self._idle.empty():
            try:
                conn = self._idle.get_nowait()
            except asyncio.QueueEmpty:
                break
            try:
                await asyncio.to_thread(conn.close)
            except Exception as e:
                logger.error(f"Error closing connection: {e}")


class MySQLTransaction(TransactionHandle):
    """Operations bound to one connection inside an open transaction."""

    def __init__(self, conn: Any, table: str):
        self._conn = conn
        self._table = table

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(_select_value, self._conn, self._table, key)

    async def set(self, key: str, value: Any) -> bool:
        await asyncio.to_thread(_write_value, self._conn, self._table, key, value)
        return True

    async def delete(self, key: str) -> bool:
        await asyncio.to_thread(_delete_value, self._conn, self._table, key)
        return True

    async def list(self) -> List[str]:
        return await asyncio.to_thread(_list_keys, self._conn, self._table)

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Rows:
        return await asyncio.to_thread(_run_query, self._conn, sql, params or ())


class MySQLAdapter(DatabaseAdapter):
    """MySQL backend configured with a compact ``user:pass@host:port/db`` DSN."""

    backend_type = "mysql"

    def __init__(self, dsn: str, table_name: str = CONFIG_TABLE):
        super().__init__()
        self._dsn = dsn
        self._table = table_name
        self._pool: Optional[ConnectionPool] = None

    @property
    def pool(self) -> Optional[ConnectionPool]:
        return self._pool

    async def initialize(self) -> bool:
        if self._initialized:
            return True
        if not self._dsn:
            return False

        logger.info("Initializing MySQL pool: %s", sanitize_connection_string(self._dsn))

        pool = ConnectionPool(parse_dsn(self._dsn))
        try:
            async with pool.acquire() as conn:
                await asyncio.to_thread(_create_table, conn, self._table)
        except Exception as exc:
            logger.error("Failed to initialize MySQL backend: %s", exc)
            await pool.close()
            return False

        self._pool = pool
        self._initialized = True
        logger.info("MySQL backend initialized")
        return True

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("MySQL pool closed")
        self._initialized = False

    def _require_pool(self) -> ConnectionPool:
        if self._pool is None:
            raise BackendUnavailableError("MySQL pool is not initialized")
        return self._pool

    async def _fetch(self, key: str) -> Optional[Any]:
        async with self._require_pool().acquire() as conn:
            return await asyncio.to_thread(_select_value, conn, self._table, key)

    async def _store(self, key: str, value: Any) -> None:
        async with self._require_pool().acquire() as conn:
            await asyncio.to_thread(_store_value, conn, self._table, key, value)

    async def _remove(self, key: str) -> None:
        async with self._require_pool().acquire() as conn:
            await asyncio.to_thread(_delete_value, conn, self._table, key)

    async def _keys(self) -> List[str]:
        async with self._require_pool().acquire() as conn:
            return await asyncio.to_thread(_list_keys, conn, self._table)

    async def _execute(self, sql: str, params: Sequence[Any]) -> Rows:
        async with self._require_pool().acquire() as conn:
            return await asyncio.to_thread(_run_query, conn, sql, params)

    async def _run_transaction(self, callback: TransactionCallback) -> Any:
        async with self._require_pool().acquire() as conn:
            await asyncio.to_thread(conn.start_transaction)
            try:
                result = await callback(MySQLTransaction(conn, self._table))
            except BaseException:
                # Cancellation included; the pool discards the connection in that case
                try:
                    await asyncio.to_thread(conn.rollback)
                except Exception as exc:
                    logger.warning("MySQL rollback failed: %s", exc)
                raise
            await asyncio.to_thread(conn.commit)
            return result


__all__ = ["ConnectionPool", "MySQLAdapter", "MySQLTransaction"]
