"""
SSTableCompactor - Compact multiple SSTables into one.
"""

import os
from collections.abc import Iterator

from kvstore.engine.merge_iterator import KWayMergeIterator
from kvstore.models.sstable import SSTable
from kvstore.models.value import Value


class SSTableCompactor:
    """
    Compacts every live SSTable into a single SSTable.

    Responsibilities:
    - Merge entries from all SSTables using k-way merge
    - Deduplicate keys (keep newest value)
    - Remove tombstones, since no older table remains for them to mask
    - Write output using the atomic temp file pattern of SSTable.create

    Does not modify any shared state; the caller swaps the table list
    and removes the inputs.
    """

    def __init__(self, sstables: list[SSTable], sstable_dir: str) -> None:
        """
        Args:
            sstables: All live SSTables, ordered newest to oldest.
                     The ordering is critical for correct deduplication.
            sstable_dir: Directory for SSTable storage.
        """
        self._sstables = sstables
        self._sstable_dir = sstable_dir

    def compact(self, new_ss_id: str) -> SSTable:
        """
        Write the merged table and return it opened.

        Args:
            new_ss_id: ID for the new compacted SSTable; must sort after
                       every input so recovery treats it as newest.
        """
        file_path = os.path.join(self._sstable_dir, f"{new_ss_id}.sst")
        return SSTable.create(id=new_ss_id, file_path=file_path, entries=self._merged_entries())

    def _merged_entries(self) -> Iterator[tuple[bytes, Value]]:
        merge_iter = KWayMergeIterator([iter(sstable) for sstable in self._sstables])
        for key, value in merge_iter:
            if not value.is_tombstone():
                yield key, value
