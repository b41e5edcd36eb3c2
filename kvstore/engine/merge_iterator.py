"""
K-Way Merge Iterator for combining sorted SSTable streams.
"""

import heapq
from collections.abc import Iterator

from kvstore.models.value import Value


class KWayMergeIterator:
    """
    Merges K sorted iterators using a min-heap.

    Time Complexity: O(M log K) where M = total entries, K = number of sources
    Space Complexity: O(K) for the heap

    Newer values (from sources earlier in the list) override older values.
    """

    def __init__(self, sources: list[Iterator[tuple[bytes, Value]]]) -> None:
        """
        Args:
            sources: Sorted iterators, ordered by priority (newest first).
                    When duplicate keys exist, earlier sources take precedence.
        """
        self._source_iters: list[Iterator[tuple[bytes, Value]] | None] = list(sources)
        self._heap: list[tuple[bytes, int, Value]] = []

        for i in range(len(self._source_iters)):
            self._advance_source(i)

    def _advance_source(self, source_idx: int) -> None:
        source_iter = self._source_iters[source_idx]
        if source_iter is None:
            return

        try:
            key, value = next(source_iter)
        except StopIteration:
            self._source_iters[source_idx] = None
            return

        # (key, source_idx) is unique so Value is never compared
        heapq.heappush(self._heap, (key, source_idx, value))

    def __iter__(self) -> "KWayMergeIterator":
        return self

    def __next__(self) -> tuple[bytes, Value]:
        if not self._heap:
            raise StopIteration

        key, source_idx, value = heapq.heappop(self._heap)
        self._advance_source(source_idx)

        # Drop older versions of the same key
        while self._heap and self._heap[0][0] == key:
            _, older_idx, _ = heapq.heappop(self._heap)
            self._advance_source(older_idx)

        return key, value
