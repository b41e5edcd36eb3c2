"""
LSM-Tree based embedded key-value store.

This package provides a persistent, ordered store of byte keys and values:
- get(key) - MemTable, then SSTables newest to oldest
- insert(key, value) - WAL append + MemTable update, returns previous value
- remove(key) - Tombstone-based deletion, returns previous value

All operations are blocking and atomic per key.
"""

from kvstore.engine.store import Store
from kvstore.exceptions import (
    CorruptionError,
    StoreClosedError,
    StoreError,
    WALCorruptionError,
)

__all__ = [
    "Store",
    "StoreError",
    "StoreClosedError",
    "CorruptionError",
    "WALCorruptionError",
]
