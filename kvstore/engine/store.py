"""
Store - Main key-value store API.
"""

import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from kvstore.engine.compactor import SSTableCompactor
from kvstore.engine.initializer import StoreInitializer
from kvstore.exceptions import StoreClosedError, StoreError
from kvstore.models.memtable import MemTable
from kvstore.models.sstable import SSTable
from kvstore.models.value import Value
from kvstore.models.wal import WAL
from kvstore.models.wal_entry import WALEntry

logger = logging.getLogger(__name__)


class Store:
    """
    Embedded, persistent, ordered key-value store.

    Provides:
    - get(key): Retrieve a value by key
    - insert(key, value): Insert or overwrite, returning the previous value
    - remove(key): Delete a key, returning the previous value
    - flush(): Persist the MemTable to an SSTable
    - close(): Flush and release every file

    Architecture:
    - Writes go to the WAL (durability) and then the MemTable
    - Once the MemTable reaches its threshold, the next write first moves it
      to an SSTable and deletes its WAL
    - When too many SSTables accumulate they are compacted into one
    - Reads check the MemTable first, then SSTables newest to oldest

    Every call blocks on file I/O. All public methods hold one internal
    re-entrant lock, so a single instance may be shared between threads.
    """

    # Callers may use the store from several threads without their own gate
    thread_safe = True

    DEFAULT_MEMTABLE_THRESHOLD = 4 * 1024 * 1024
    MAX_MEMTABLE_THRESHOLD = 1024 * 1024 * 1024
    DEFAULT_MAX_SSTABLES = 8

    def __init__(
        self,
        storage_dir: str,
        memtable_threshold: int = DEFAULT_MEMTABLE_THRESHOLD,
        fsync_interval_ms: int = 0,
        max_sstables: int = DEFAULT_MAX_SSTABLES,
    ) -> None:
        """
        Open (or create) a store rooted at storage_dir.

        Args:
            storage_dir: Directory for persistent storage.
            memtable_threshold: Size threshold for MemTable flush in bytes.
            fsync_interval_ms: Milliseconds between WAL fsyncs (0 = always fsync).
                               Maximum: 10000 (10 seconds).
            max_sstables: Number of SSTables above which all are compacted.

        Raises:
            ValueError: If an argument is out of range.
            PermissionError: If storage_dir cannot be written.
            StoreError: If existing data cannot be recovered.
        """
        if memtable_threshold <= 0:
            raise ValueError(f"memtable_threshold must be positive, got {memtable_threshold}")
        if memtable_threshold > self.MAX_MEMTABLE_THRESHOLD:
            raise ValueError(
                f"memtable_threshold too large: {memtable_threshold} bytes. "
                f"Maximum 1GB to avoid OOM."
            )
        if not 0 <= fsync_interval_ms <= WAL.MAX_FSYNC_INTERVAL_MS:
            raise ValueError(
                f"fsync_interval_ms must be between 0 and 10000, got {fsync_interval_ms}"
            )
        if max_sstables < 1:
            raise ValueError(f"max_sstables must be at least 1, got {max_sstables}")
        if not storage_dir or not storage_dir.strip():
            raise ValueError("storage_dir cannot be empty")

        storage_dir = os.path.abspath(storage_dir)

        if not os.path.exists(storage_dir):
            parent = os.path.dirname(storage_dir)
            if not os.access(parent, os.W_OK):
                raise PermissionError(
                    f"Cannot create storage_dir: {storage_dir}. "
                    f"Parent directory not writable: {parent}"
                )
        elif not os.access(storage_dir, os.W_OK):
            raise PermissionError(f"storage_dir not writable: {storage_dir}")

        self._storage_dir = storage_dir
        self._memtable_threshold = memtable_threshold
        self._fsync_interval_ms = fsync_interval_ms
        self._max_sstables = max_sstables

        self._lock = threading.RLock()
        self._closed = False

        self._memtable: MemTable
        self._wal: WAL
        self._sstables: list[SSTable] = []  # newest first
        self._ss_id_seq = 0
        self._wal_id_seq = 0

        try:
            self._initialize()
        except OSError as e:
            raise StoreError(f"Failed to open store at {storage_dir}: {e}") from e

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    @property
    def closed(self) -> bool:
        return self._closed

    def _initialize(self) -> None:
        initializer = StoreInitializer(self._storage_dir)
        self._wal_dir = initializer.wal_dir
        self._sstable_dir = initializer.sstable_dir

        state = initializer.recover()
        self._sstables = state.sstables
        self._ss_id_seq = state.next_ss_id
        self._wal_id_seq = state.next_wal_id

        # Leftover WAL contents become an SSTable before accepting writes
        if state.memtable.size() > 0:
            self._write_sstable(state.memtable)
        for wal in state.wals:
            wal.destroy()

        self._wal = self._open_wal()
        self._memtable = MemTable()
        self._maybe_compact()

        logger.info(
            "Opened store at %s with %d SSTable(s)", self._storage_dir, len(self._sstables)
        )

    def _open_wal(self) -> WAL:
        wal_id = str(self._wal_id_seq)
        self._wal_id_seq += 1

        wal = WAL(id=wal_id, file_path=os.path.join(self._wal_dir, f"wal_{wal_id}.wal"))
        wal.set_fsync_interval(self._fsync_interval_ms)
        wal.open()
        return wal

    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        """Hold the store lock and translate I/O failures into StoreError."""
        with self._lock:
            if self._closed:
                raise StoreClosedError(f"Cannot {name}: store is closed")
            try:
                yield
            except OSError as e:
                raise StoreError(f"{name} failed: {e}") from e

    @staticmethod
    def _check_bytes(name: str, data: bytes) -> None:
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError(f"{name} must be bytes, got {type(data).__name__}")

    def get(self, key: bytes) -> bytes | None:
        """
        Retrieve a value by key.

        Returns:
            The stored bytes, or None if the key is absent.

        Raises:
            StoreError: On I/O failure or corruption.
        """
        self._check_bytes("key", key)
        with self._operation("get"):
            return self._lookup(bytes(key))

    def insert(self, key: bytes, value: bytes) -> bytes | None:
        """
        Insert or overwrite a key.

        Returns:
            The value previously stored under key, or None.

        Raises:
            StoreError: On I/O failure or corruption.
        """
        self._check_bytes("key", key)
        self._check_bytes("value", value)
        with self._operation("insert"):
            key = bytes(key)
            previous = self._lookup(key)
            self._write(key, Value.regular(bytes(value)))
            return previous

    def remove(self, key: bytes) -> bytes | None:
        """
        Remove a key.

        Returns:
            The value that was removed, or None if nothing was stored
            (in which case nothing is written).

        Raises:
            StoreError: On I/O failure or corruption.
        """
        self._check_bytes("key", key)
        with self._operation("remove"):
            key = bytes(key)
            previous = self._lookup(key)
            if previous is not None:
                self._write(key, Value.tombstone())
            return previous

    def flush(self) -> None:
        """Write the MemTable to an SSTable even if below its threshold."""
        with self._operation("flush"):
            self._flush_memtable()

    def _lookup(self, key: bytes) -> bytes | None:
        value = self._memtable.get(key)
        if value is None:
            for sstable in self._sstables:
                value = sstable.get(key)
                if value is not None:
                    break

        if value is None or value.is_tombstone():
            return None
        return value.data

    def _write(self, key: bytes, value: Value) -> None:
        # A failed flush must leave this write unapplied
        if self._memtable.size_bytes() >= self._memtable_threshold:
            self._flush_memtable()

        # WAL first for durability
        self._wal.append(WALEntry(key=key, value=value, seq=self._wal.seq))
        self._memtable.put(key, value)

    def _write_sstable(self, memtable: MemTable) -> SSTable:
        ss_id = str(self._ss_id_seq)
        self._ss_id_seq += 1

        file_path = os.path.join(self._sstable_dir, f"{ss_id}.sst")
        sstable = SSTable.create(id=ss_id, file_path=file_path, entries=memtable)
        self._sstables.insert(0, sstable)

        logger.debug("Flushed %d entries to SSTable %s", len(sstable), ss_id)
        return sstable

    def _flush_memtable(self) -> None:
        """
        Move the MemTable into a new SSTable and start a fresh MemTable and WAL.

        If the next WAL or the SSTable cannot be written, the current
        MemTable and WAL stay in place untouched and the next flush
        retries with the same data.
        """
        if self._memtable.size() == 0:
            return

        next_wal = self._open_wal()
        try:
            self._write_sstable(self._memtable)
        except BaseException:
            next_wal.destroy()
            raise

        retired, self._wal, self._memtable = self._wal, next_wal, MemTable()
        # Its entries are on disk now; the store stays writable even if this fails
        retired.destroy()
        self._maybe_compact()

    def _maybe_compact(self) -> None:
        if len(self._sstables) <= self._max_sstables:
            return

        ss_id = str(self._ss_id_seq)
        self._ss_id_seq += 1

        inputs = self._sstables
        compacted = SSTableCompactor(inputs, self._sstable_dir).compact(ss_id)
        self._sstables = [compacted]

        for sstable in inputs:
            sstable.destroy()

        logger.info(
            "Compacted %d SSTables into SSTable %s (%d live keys)",
            len(inputs),
            ss_id,
            len(compacted),
        )

    def close(self) -> None:
        """
        Flush pending writes and close every file.

        Closing an already closed store does nothing.
        """
        with self._lock:
            if self._closed:
                return
            try:
                self._flush_memtable()
                self._wal.destroy()
            except OSError as e:
                raise StoreError(f"close failed: {e}") from e
            finally:
                for sstable in self._sstables:
                    sstable.close()
                self._closed = True

            logger.info("Closed store at %s", self._storage_dir)

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
