"""Key-value backend for deployments without a SQL database.

Values are stored as JSON text under literal keys (optionally prefixed).
The store has no query language and no transactions: ``query`` returns an
empty list and ``transaction`` runs its callback directly, without any
atomicity guarantee.
"""

from __future__ import annotations

import fnmatch
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import redis.asyncio as aioredis

from .base import (
    BackendUnavailableError,
    CapabilityError,
    DatabaseAdapter,
    Rows,
    TransactionCallback,
)
from .dsn import sanitize_connection_string

logger = logging.getLogger(__name__)

MEMORY_URL_SCHEME = "memory://"

_REQUIRED_METHODS = ("ping", "get", "set", "delete", "scan_iter")


class MemoryNamespace:
    """Process-local namespace with the subset of the ``redis.asyncio`` API we use.

    Selected with ``KV_URL=memory://``; contents are lost on restart.
    """

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None) -> AsyncIterator[str]:
        for key in list(self._data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self) -> None:
        self._data.clear()


class KVAdapter(DatabaseAdapter):
    """Key-value backend over a Redis URL or an injected namespace handle."""

    backend_type = "kv"

    def __init__(self, url: Optional[str] = None, namespace: Any = None, prefix: str = ""):
        super().__init__()
        self._url = url
        self._namespace = namespace
        self._owns_namespace = False
        self._prefix = prefix or ""

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _open(self, url: str) -> Any:
        if url.startswith(MEMORY_URL_SCHEME):
            return MemoryNamespace()
        return aioredis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    async def initialize(self) -> bool:
        if self._initialized:
            return True

        if self._namespace is None:
            if not self._url:
                return False
            logger.info("Connecting to key-value store: %s", sanitize_connection_string(self._url))
            try:
                self._namespace = self._open(self._url)
            except Exception as exc:
                logger.error("Invalid key-value store URL: %s", exc)
                return False
            self._owns_namespace = True

        missing = [name for name in _REQUIRED_METHODS if not callable(getattr(self._namespace, name, None))]
        if missing:
            logger.error("Key-value namespace is missing methods: %s", ", ".join(missing))
            await self._release_namespace()
            return False

        try:
            await self._namespace.ping()
        except Exception as exc:
            logger.error("Failed to reach key-value store: %s", exc)
            await self._release_namespace()
            return False

        self._initialized = True
        logger.info("Key-value backend initialized")
        return True

    async def _release_namespace(self) -> None:
        if self._owns_namespace and self._namespace is not None:
            try:
                await self._namespace.aclose()
            except Exception as exc:
                logger.debug("Error closing key-value client: %s", exc)
            self._namespace = None
            self._owns_namespace = False

    async def close(self) -> None:
        await self._release_namespace()
        self._initialized = False

    def _require_namespace(self) -> Any:
        if self._namespace is None:
            raise BackendUnavailableError("Key-value store is not initialized")
        return self._namespace

    async def _fetch(self, key: str) -> Optional[Any]:
        data = await self._require_namespace().get(self._make_key(key))
        if data is None:
            return None
        try:
            return json.loads(data)
        except (json.JSONDecodeError, TypeError):
            return data

    async def _store(self, key: str, value: Any) -> None:
        payload = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
        await self._require_namespace().set(self._make_key(key), payload)

    async def _remove(self, key: str) -> None:
        await self._require_namespace().delete(self._make_key(key))

    async def _keys(self) -> List[str]:
        # SCAN may return a key more than once; order is whatever the store yields
        seen: Dict[str, None] = {}
        async for full_key in self._require_namespace().scan_iter(match=f"{self._prefix}*", count=100):
            seen[full_key[len(self._prefix):]] = None
        return list(seen)

    async def _execute(self, sql: str, params: Sequence[Any]) -> Rows:
        raise CapabilityError("Key-value store does not support SQL queries")

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Rows:
        logger.warning("Key-value store does not support SQL queries; returning no rows")
        return []

    async def _run_transaction(self, callback: TransactionCallback) -> Any:
        # No atomicity: the callback works on the adapter itself
        return await callback(self)


__all__ = ["KVAdapter", "MemoryNamespace", "MEMORY_URL_SCHEME"]
