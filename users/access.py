"""
Strategies for running blocking store calls from the event loop.

Every strategy hands the call to a dedicated thread pool and awaits it, so
the loop that accepts requests keeps running while the store does I/O.
They differ only in what happens on the worker thread:

- DirectAccess calls the store straight away. Only valid for stores that
  declare ``thread_safe = True``.
- SerializedAccess takes an exclusive gate around each call, so at most one
  store call is in flight at a time. The gate is taken on the worker
  thread, never on the event loop.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import Executor
from enum import Enum
from typing import TypeVar

from kvstore import Store

T = TypeVar("T")


class AccessMode(str, Enum):
    SERIALIZED = "serialized"
    DIRECT = "direct"


class StorageAccess(ABC):
    """Runs one store operation at a time on behalf of a coroutine."""

    mode: AccessMode

    def __init__(self, store: Store, executor: Executor) -> None:
        self._store = store
        self._executor = executor

    @property
    def store(self) -> Store:
        return self._store

    async def run(self, operation: Callable[[Store], T]) -> T:
        """
        Run operation(store) on the worker pool and return its result.

        Exceptions raised by the operation propagate unchanged.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._call, operation)

    @abstractmethod
    def _call(self, operation: Callable[[Store], T]) -> T:
        """Invoke operation on the current (worker) thread."""


class DirectAccess(StorageAccess):
    mode = AccessMode.DIRECT

    def __init__(self, store: Store, executor: Executor) -> None:
        if not getattr(store, "thread_safe", False):
            raise ValueError(
                f"{type(store).__name__} is not thread-safe; use serialized access"
            )
        super().__init__(store, executor)

    def _call(self, operation: Callable[[Store], T]) -> T:
        return operation(self._store)


class SerializedAccess(StorageAccess):
    mode = AccessMode.SERIALIZED

    def __init__(self, store: Store, executor: Executor) -> None:
        super().__init__(store, executor)
        self._gate = threading.Lock()

    def _call(self, operation: Callable[[Store], T]) -> T:
        with self._gate:
            return operation(self._store)


def create_access(mode: AccessMode | str, store: Store, executor: Executor) -> StorageAccess:
    """
    Build the access strategy for mode.

    Raises:
        ValueError: If mode is unknown, or direct access is requested for a
                    store that is not thread-safe.
    """
    mode = AccessMode(mode)
    if mode is AccessMode.DIRECT:
        return DirectAccess(store, executor)
    return SerializedAccess(store, executor)
