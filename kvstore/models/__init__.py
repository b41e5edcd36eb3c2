"""
Data models for the key-value store.
"""

from kvstore.models.value import Value, ValueType
from kvstore.models.wal_entry import WALEntry
from kvstore.models.wal import WAL
from kvstore.models.memtable import MemTable
from kvstore.models.sstable import SSTable

__all__ = [
    "Value",
    "ValueType",
    "WALEntry",
    "WAL",
    "MemTable",
    "SSTable",
]
