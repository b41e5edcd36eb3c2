"""
Per-key ordering of coroutines.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeySequencer:
    """
    Lets at most one coroutine work on a given key at a time.

    Waiters on the same key are admitted in the order they arrived
    (asyncio.Lock wakes waiters first-in, first-out), so operations on one
    key complete in the order they were issued. Different keys never wait
    on each other. Locks are dropped once no coroutine holds or waits for
    them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
