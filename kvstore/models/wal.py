import os
import struct
import time
import zlib
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from kvstore.exceptions import WALCorruptionError
from kvstore.models.wal_entry import WALEntry

# Each record on disk is [length:4][entry][crc32 of entry:4]
_LENGTH = struct.Struct(">I")
_CHECKSUM = struct.Struct(">I")


def _checksum(payload: bytes) -> int:
    return zlib.crc32(payload) & 0xffffffff


def encode_frame(entry: WALEntry) -> bytes:
    """Serialize entry into a length-prefixed, checksummed frame."""
    payload = bytes(entry)
    return _LENGTH.pack(len(payload)) + payload + _CHECKSUM.pack(_checksum(payload))


def read_entries(file_path: str) -> Iterator[WALEntry]:
    """
    Yield every intact entry in the log at file_path, oldest first.

    A missing file yields nothing. A frame cut short by a crash mid-append
    ends the log quietly; a complete frame whose checksum does not match
    raises WALCorruptionError.
    """
    if not os.path.exists(file_path):
        return

    with open(file_path, "rb") as f:
        while True:
            offset = f.tell()

            header = f.read(_LENGTH.size)
            if len(header) < _LENGTH.size:
                return
            (length,) = _LENGTH.unpack(header)

            payload = f.read(length)
            trailer = f.read(_CHECKSUM.size)
            if len(payload) < length or len(trailer) < _CHECKSUM.size:
                return

            (expected,) = _CHECKSUM.unpack(trailer)
            actual = _checksum(payload)
            if expected != actual:
                raise WALCorruptionError(expected=expected, actual=actual, entry_offset=offset)

            yield WALEntry.from_bytes(payload)


class WAL:
    """
    Write-Ahead Log for durability.

    Every write is appended here before it reaches the memtable, so the
    memtable can be rebuilt by replaying the log after a crash.

    Not synchronized: the owning store serializes access.
    """

    MAX_FSYNC_INTERVAL_MS = 10000

    def __init__(self, id: str, file_path: str) -> None:
        self.id = id
        self.file_path = file_path
        self._file: BinaryIO | None = None
        self._seq = 0
        self._fsync_interval_ms = 0
        self._last_fsync = 0.0

    @property
    def seq(self) -> int:
        """Sequence number for the next appended entry."""
        return self._seq

    def set_fsync_interval(self, fsync_interval_ms: int) -> None:
        """
        Sync to disk at most once per interval instead of on every append.

        Args:
            fsync_interval_ms: 0 syncs every append; at most MAX_FSYNC_INTERVAL_MS.
        """
        if not 0 <= fsync_interval_ms <= self.MAX_FSYNC_INTERVAL_MS:
            raise ValueError(
                f"fsync_interval_ms must be between 0 and {self.MAX_FSYNC_INTERVAL_MS}, "
                f"got {fsync_interval_ms}"
            )
        self._fsync_interval_ms = fsync_interval_ms

    def open(self) -> None:
        """Open for appending, resuming the sequence after any entries on disk."""
        Path(self.file_path).parent.mkdir(parents=True, exist_ok=True)
        self._seq = max((entry.seq + 1 for entry in read_entries(self.file_path)), default=0)
        self._file = open(self.file_path, "ab")

    def append(self, entry: WALEntry) -> None:
        """
        Append entry, syncing to disk according to the fsync interval.

        Raises:
            RuntimeError: If the log is not open.
        """
        if self._file is None:
            raise RuntimeError("WAL is not open")

        self._file.write(encode_frame(entry))
        if self._sync_due():
            self._sync()
        else:
            self._file.flush()

        self._seq = entry.seq + 1

    def _sync_due(self) -> bool:
        if self._fsync_interval_ms == 0:
            return True

        now = time.monotonic()
        if (now - self._last_fsync) * 1000 < self._fsync_interval_ms:
            return False
        self._last_fsync = now
        return True

    def _sync(self) -> None:
        self._file.flush()
        # fdatasync is Linux only
        getattr(os, "fdatasync", os.fsync)(self._file.fileno())

    def close(self) -> None:
        if self._file is None:
            return
        self._sync()
        self._file.close()
        self._file = None

    def destroy(self) -> None:
        """Close the log and delete its file."""
        self.close()
        if os.path.exists(self.file_path):
            os.remove(self.file_path)

    def __iter__(self) -> Iterator[WALEntry]:
        return read_entries(self.file_path)

    def __enter__(self) -> "WAL":
        if self._file is None:
            self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
