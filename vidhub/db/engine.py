"""Database facade: picks one backend by priority and forwards calls to it."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

from .base import (
    DatabaseAdapter,
    DatabaseNotInitializedError,
    Rows,
    StorageResult,
    TransactionCallback,
)
from .config import BackendConfig, DatabaseConfig, KvConfig, PostgresConfig, SqlConfig

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[Any], DatabaseAdapter]


class DatabaseState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    BOUND = "bound"
    FAILED = "failed"


def _build_mysql(config: SqlConfig) -> DatabaseAdapter:
    # Drivers are imported lazily so an unused backend's driver is never loaded
    from .mysql import MySQLAdapter

    return MySQLAdapter(config.dsn)


def _build_postgres(config: PostgresConfig) -> DatabaseAdapter:
    from .postgres import PostgresAdapter

    return PostgresAdapter(config.connection, table_name=config.table_name)


def _build_kv(config: KvConfig) -> DatabaseAdapter:
    from .kv import KVAdapter

    return KVAdapter(url=config.url, namespace=config.namespace, prefix=config.prefix)


DEFAULT_FACTORIES: Dict[Type[Any], AdapterFactory] = {
    SqlConfig: _build_mysql,
    PostgresConfig: _build_postgres,
    KvConfig: _build_kv,
}


class Database:
    """Single entry point to configuration storage.

    ``initialize`` walks the configured candidates in priority order
    (SQL, Postgres, key-value) and binds the first adapter that comes up.
    Lower-priority candidates are not constructed once one succeeds.
    Every data method raises :class:`DatabaseNotInitializedError` until a
    backend is bound.
    """

    def __init__(self, adapter_factories: Optional[Dict[Type[Any], AdapterFactory]] = None):
        self._factories = dict(DEFAULT_FACTORIES)
        if adapter_factories:
            self._factories.update(adapter_factories)
        self._adapter: Optional[DatabaseAdapter] = None
        self._state = DatabaseState.UNINITIALIZED
        self._lock = asyncio.Lock()

    @property
    def state(self) -> DatabaseState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is DatabaseState.BOUND

    @property
    def backend_type(self) -> Optional[str]:
        return self._adapter.backend_type if self._adapter else None

    @property
    def adapter(self) -> DatabaseAdapter:
        """The bound adapter (must be initialized first)."""
        if self._adapter is None:
            raise DatabaseNotInitializedError("Database not initialized. Call initialize() first.")
        return self._adapter

    async def initialize(self, config: DatabaseConfig) -> bool:
        """Bind the first backend from ``config`` that initializes.

        Returns ``True`` when a backend is bound (including when one already
        was), ``False`` when every candidate failed or none is configured.
        """
        if self._state is DatabaseState.BOUND:
            return True

        async with self._lock:
            if self._state is DatabaseState.BOUND:
                return True

            for candidate in config.candidates():
                adapter = await self._try_candidate(candidate)
                if adapter is not None:
                    self._adapter = adapter
                    self._state = DatabaseState.BOUND
                    logger.info("Database bound to %s backend", adapter.backend_type)
                    return True

            if config.is_empty:
                logger.warning("No storage backend configured; using default configuration only")
            else:
                logger.error("All configured storage backends failed to initialize")
            self._state = DatabaseState.FAILED
            return False

    async def _try_candidate(self, candidate: BackendConfig) -> Optional[DatabaseAdapter]:
        factory = self._factories.get(type(candidate))
        if factory is None:
            logger.error("No adapter registered for %s", type(candidate).__name__)
            return None

        try:
            adapter = factory(candidate)
        except Exception as exc:
            logger.error("Could not create %s adapter: %s", type(candidate).__name__, exc)
            return None

        try:
            ok = await adapter.initialize()
        except Exception as exc:
            logger.error("%s adapter raised during initialize: %s", adapter.backend_type, exc)
            ok = False

        if ok:
            return adapter

        logger.warning("%s backend unavailable, trying next candidate", adapter.backend_type)
        try:
            await adapter.close()
        except Exception as exc:
            logger.debug("Error closing failed %s adapter: %s", adapter.backend_type, exc)
        return None

    async def get_result(self, key: str) -> StorageResult[Any]:
        return await self.adapter.get_result(key)

    async def get(self, key: str) -> Optional[Any]:
        return await self.adapter.get(key)

    async def set(self, key: str, value: Any) -> bool:
        return await self.adapter.set(key, value)

    async def delete(self, key: str) -> bool:
        return await self.adapter.delete(key)

    async def list(self) -> List[str]:
        return await self.adapter.list()

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Rows:
        return await self.adapter.query(sql, params)

    async def transaction(self, callback: TransactionCallback) -> Any:
        return await self.adapter.transaction(callback)

    async def close(self) -> None:
        """Release the bound adapter and return to the uninitialized state."""
        adapter, self._adapter = self._adapter, None
        self._state = DatabaseState.UNINITIALIZED
        if adapter is not None:
            await adapter.close()
            logger.info("Database closed")


# Global facade instance
_database: Optional[Database] = None


def get_database() -> Database:
    """Return the process-wide facade, creating it (unbound) on first use."""
    global _database
    if _database is None:
        _database = Database()
    return _database


async def init_database_from_settings(settings: Any = None) -> Database:
    """Initialize the process-wide facade from environment settings."""
    if settings is None:
        from ..config.settings import Settings

        settings = Settings
    database = get_database()
    if not database.is_initialized:
        await database.initialize(DatabaseConfig.from_settings(settings))
    return database


async def cleanup_database() -> None:
    """Close and drop the process-wide facade."""
    global _database

    if _database:
        await _database.close()
        _database = None


__all__ = [
    "Database",
    "DatabaseState",
    "DEFAULT_FACTORIES",
    "cleanup_database",
    "get_database",
    "init_database_from_settings",
]
