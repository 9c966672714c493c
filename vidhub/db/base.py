"""Base storage abstractions shared by every configuration backend."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Key of the singleton configuration record
CONFIG_KEY = "config"

# Default table / namespace name
CONFIG_TABLE = "configs"

# Set while any adapter is running a transaction callback in this context
_in_transaction: ContextVar[bool] = ContextVar("in_transaction", default=False)

Row = Dict[str, Any]
Rows = List[Row]


class StorageError(Exception):
    """Base class for storage failures reported by adapters."""


class BackendUnavailableError(StorageError):
    """The backing store could not be reached or prepared."""


class OperationError(StorageError):
    """A read or write failed after the adapter was initialized."""


class CapabilityError(StorageError):
    """The operation is not supported by this kind of backend."""


class NestedTransactionError(StorageError):
    """A transaction was requested from inside another transaction."""


class DatabaseNotInitializedError(RuntimeError):
    """The facade was used before any adapter was bound."""


@dataclass
class StorageResult(Generic[T]):
    """Outcome of a guarded adapter operation.

    ``error`` is set when the backend failed; ``value`` is ``None`` both for
    a missing key and for a failure, so check ``ok`` to tell them apart.
    """

    value: Optional[T] = None
    error: Optional[StorageError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def found(self) -> bool:
        return self.ok and self.value is not None

    def unwrap_or(self, default: T) -> T:
        if self.ok and self.value is not None:
            return self.value
        return default


class StorageHandle(ABC):
    """Operations available on an adapter and on its transaction handles."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> bool:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def list(self) -> List[str]:
        ...

    @abstractmethod
    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Rows:
        ...

    @abstractmethod
    async def transaction(self, callback: TransactionCallback) -> Any:
        ...


TransactionCallback = Callable[[StorageHandle], Awaitable[Any]]


class TransactionHandle(StorageHandle):
    """Adapter-scoped view bound to a single open transaction.

    Errors raised here propagate to the owning adapter, which rolls back.
    """

    async def transaction(self, callback: TransactionCallback) -> Any:
        raise NestedTransactionError("Nested transactions are not supported")


class DatabaseAdapter(StorageHandle):
    """Abstract base class for configuration storage backends.

    Subclasses implement the raw ``_fetch``/``_store``/``_remove``/``_keys``/
    ``_execute`` primitives and may let driver exceptions escape from them.
    The public contract methods wrap those primitives so that no driver
    exception leaves the adapter: failures are logged and converted to
    ``None``, ``False`` or an empty list.
    """

    backend_type = "unknown"

    def __init__(self) -> None:
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    async def initialize(self) -> bool:
        """Connect and ensure the backing table exists.

        Must be idempotent and must return ``False`` instead of raising.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release pooled resources. Safe to call when never initialized."""
        ...

    @abstractmethod
    async def _fetch(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def _store(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def _remove(self, key: str) -> None:
        ...

    @abstractmethod
    async def _keys(self) -> List[str]:
        ...

    @abstractmethod
    async def _execute(self, sql: str, params: Sequence[Any]) -> Rows:
        ...

    @abstractmethod
    async def _run_transaction(self, callback: TransactionCallback) -> Any:
        """Run ``callback`` with a handle; commit on return, roll back on any exception."""
        ...

    async def transaction(self, callback: TransactionCallback) -> Any:
        """Run ``callback`` in a transaction.

        Starting another transaction from inside the callback, whether through
        the handle, this adapter or the facade, raises
        :class:`NestedTransactionError` before any connection is borrowed.
        """
        if _in_transaction.get():
            raise NestedTransactionError("Nested transactions are not supported")
        if not await self._ensure_ready():
            raise BackendUnavailableError(f"{self.backend_type} backend is not available")

        token = _in_transaction.set(True)
        try:
            return await self._run_transaction(callback)
        finally:
            _in_transaction.reset(token)

    async def _ensure_ready(self) -> bool:
        if self._initialized:
            return True
        return await self.initialize()

    async def _guard(self, action: str, operation: Callable[[], Awaitable[T]]) -> StorageResult[T]:
        if not await self._ensure_ready():
            return StorageResult(
                error=BackendUnavailableError(f"{self.backend_type} backend is not available")
            )
        try:
            return StorageResult(value=await operation())
        except Exception as exc:
            logger.error("%s failed on %s backend: %s", action, self.backend_type, exc)
            return StorageResult(error=OperationError(f"{action} failed: {exc}"))

    async def get_result(self, key: str) -> StorageResult[Any]:
        """Read ``key`` and report backend failures explicitly."""
        return await self._guard(f"get {key!r}", lambda: self._fetch(key))

    async def get(self, key: str) -> Optional[Any]:
        return (await self.get_result(key)).value

    async def set(self, key: str, value: Any) -> bool:
        async def _op() -> bool:
            await self._store(key, value)
            return True

        result = await self._guard(f"set {key!r}", _op)
        return result.unwrap_or(False)

    async def delete(self, key: str) -> bool:
        async def _op() -> bool:
            await self._remove(key)
            return True

        result = await self._guard(f"delete {key!r}", _op)
        return result.unwrap_or(False)

    async def list(self) -> List[str]:
        result = await self._guard("list", self._keys)
        return result.unwrap_or([])

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Rows:
        result = await self._guard("query", lambda: self._execute(sql, params or ()))
        return result.unwrap_or([])


__all__ = [
    "BackendUnavailableError",
    "CONFIG_KEY",
    "CONFIG_TABLE",
    "CapabilityError",
    "DatabaseAdapter",
    "DatabaseNotInitializedError",
    "NestedTransactionError",
    "OperationError",
    "Row",
    "Rows",
    "StorageError",
    "StorageHandle",
    "StorageResult",
    "TransactionCallback",
    "TransactionHandle",
]
