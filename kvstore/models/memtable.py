"""
MemTable - In-memory sorted table.
"""

import bisect
from collections.abc import Iterator

from kvstore.models.value import Value


class MemTable:
    """
    In-memory table of the most recent writes, kept in key order.

    Supports:
    - O(1) get, O(log N) locate + list insert for new keys
    - Sorted iteration for flushing to SSTable

    The store swaps in a fresh MemTable once a flush has succeeded, so a
    table is never written to after it reaches disk.
    """

    def __init__(self) -> None:
        self._entries: dict[bytes, Value] = {}
        self._keys: list[bytes] = []
        self._size_bytes = 0

    def put(self, key: bytes, value: Value) -> None:
        """
        Insert or update a key-value pair.

        Args:
            key: The key to insert/update.
            value: The value to store (may be a tombstone).
        """
        previous = self._entries.get(key)
        if previous is None:
            bisect.insort(self._keys, key)
            self._size_bytes += len(key) + value.size_bytes()
        else:
            self._size_bytes += value.size_bytes() - previous.size_bytes()

        self._entries[key] = value

    def get(self, key: bytes) -> Value | None:
        """
        Retrieve value by key.

        Returns:
            The Value (possibly a tombstone) if present, None otherwise.
        """
        return self._entries.get(key)

    def size(self) -> int:
        return len(self._keys)

    def size_bytes(self) -> int:
        return self._size_bytes

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[tuple[bytes, Value]]:
        for key in self._keys:
            yield key, self._entries[key]
