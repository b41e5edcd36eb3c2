"""
StoreInitializer - Handle startup and crash recovery.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from kvstore.models.memtable import MemTable
from kvstore.models.sstable import SSTable
from kvstore.models.wal import WAL

logger = logging.getLogger(__name__)

_WAL_PATTERN = re.compile(r"^wal_(\d+)\.wal$")
_SSTABLE_PATTERN = re.compile(r"^(\d+)\.sst$")


@dataclass
class RecoveredState:
    """
    What was found on disk at startup.

    Attributes:
        memtable: Writes replayed from every leftover WAL, oldest first.
        wals: The leftover WALs, to be deleted once the memtable is flushed.
        sstables: Live SSTables ordered newest to oldest.
        next_ss_id: First unused SSTable ID.
        next_wal_id: First unused WAL ID.
    """

    memtable: MemTable
    wals: list[WAL] = field(default_factory=list)
    sstables: list[SSTable] = field(default_factory=list)
    next_ss_id: int = 0
    next_wal_id: int = 0


class StoreInitializer:
    """
    Handles store initialization and crash recovery.

    Responsibilities:
    - Remove orphaned .tmp files from interrupted flushes or compactions
    - Discover existing SSTable files
    - Replay existing WAL files into a MemTable
    - Track the last SSTable and WAL IDs for sequence generation
    """

    def __init__(self, storage_dir: str) -> None:
        self.storage_dir = storage_dir
        self.wal_dir = os.path.join(storage_dir, "wal")
        self.sstable_dir = os.path.join(storage_dir, "sstables")

    def _list_ids(self, directory: str, pattern: re.Pattern) -> list[tuple[int, str]]:
        """Return (id, path) pairs of files in directory matching pattern, by ID."""
        if not os.path.exists(directory):
            return []

        found = []
        for filename in os.listdir(directory):
            match = pattern.match(filename)
            if match:
                found.append((int(match.group(1)), os.path.join(directory, filename)))
        return sorted(found)

    def _cleanup_temp_files(self) -> None:
        """
        For flushes, the data is still in the WAL and will be re-flushed.
        For compactions, the input SSTables are still intact.
        """
        for filename in os.listdir(self.sstable_dir):
            if filename.endswith(".tmp"):
                logger.warning("Removing orphaned temp file %s", filename)
                os.remove(os.path.join(self.sstable_dir, filename))

    def recover(self) -> RecoveredState:
        Path(self.wal_dir).mkdir(parents=True, exist_ok=True)
        Path(self.sstable_dir).mkdir(parents=True, exist_ok=True)

        self._cleanup_temp_files()

        state = RecoveredState(memtable=MemTable())

        for ss_id, path in self._list_ids(self.sstable_dir, _SSTABLE_PATTERN):
            sstable = SSTable(id=str(ss_id), file_path=path)
            sstable.open()
            state.sstables.insert(0, sstable)
            state.next_ss_id = ss_id + 1

        replayed = 0
        for wal_id, path in self._list_ids(self.wal_dir, _WAL_PATTERN):
            wal = WAL(id=str(wal_id), file_path=path)
            for entry in wal:
                state.memtable.put(entry.key, entry.value)
                replayed += 1
            state.wals.append(wal)
            state.next_wal_id = wal_id + 1

        if state.wals:
            logger.info(
                "Replayed %d entries from %d WAL file(s) in %s",
                replayed,
                len(state.wals),
                self.storage_dir,
            )

        return state
