"""
SSTable - Sorted String Table for on-disk storage.
"""

import os
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import BinaryIO

from kvstore.exceptions import CorruptionError
from kvstore.models.value import Value


class SSTable:
    """
    Sorted String Table - immutable on-disk sorted key-value storage.

    File layout:
    - Data: [key_len:4][key][value_len:4][value] ... in key order
    - Index: [num_entries:4] then [key_len:4][key][offset:8] per entry
    - Footer: [index_offset:8]

    The index is loaded into memory on open; point reads use os.pread so
    several threads can read the same table without sharing a file position.
    """

    FOOTER_SIZE = 8

    def __init__(self, id: str, file_path: str) -> None:
        """
        Initialize SSTable.

        Args:
            id: Unique identifier for this SSTable.
            file_path: Path to the SSTable file.
        """
        self.id = id
        self.file_path = file_path
        self._file: BinaryIO | None = None
        self._index: dict[bytes, int] = {}  # key -> offset
        self._sorted_keys: list[bytes] = []

    def open(self) -> None:
        """Open the SSTable file and load index."""
        if self._file is not None:
            return
        if not os.path.exists(self.file_path):
            raise FileNotFoundError(f"SSTable not found: {self.file_path}")

        self._file = open(self.file_path, "rb")
        try:
            self._load_index()
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None

    def destroy(self) -> None:
        """Close and delete the SSTable file."""
        self.close()
        if os.path.exists(self.file_path):
            os.remove(self.file_path)

    def __len__(self) -> int:
        return len(self._sorted_keys)

    def get(self, key: bytes) -> Value | None:
        """
        Retrieve value by key.

        Returns:
            The Value (possibly a tombstone) if the key is in this table,
            None otherwise.
        """
        offset = self._index.get(key)
        if offset is None:
            return None

        entry_key, value = self._read_entry_at(offset)
        if entry_key != key:
            raise CorruptionError(
                f"SSTable {self.id}: index points at {entry_key!r}, expected {key!r}"
            )
        return value

    def __iter__(self) -> Iterator[tuple[bytes, Value]]:
        """Iterate over all entries in key order."""
        for key in self._sorted_keys:
            yield self._read_entry_at(self._index[key])

    def __enter__(self) -> "SSTable":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _load_index(self) -> None:
        file_size = os.fstat(self._file.fileno()).st_size
        if file_size < self.FOOTER_SIZE + 4:
            raise CorruptionError(f"SSTable {self.id} is truncated ({file_size} bytes)")

        self._file.seek(-self.FOOTER_SIZE, os.SEEK_END)
        index_offset = int.from_bytes(self._file.read(8), "big")
        if index_offset > file_size - self.FOOTER_SIZE - 4:
            raise CorruptionError(f"SSTable {self.id} has an invalid index offset")

        self._file.seek(index_offset)
        index_bytes = self._file.read(file_size - self.FOOTER_SIZE - index_offset)

        num_entries = int.from_bytes(index_bytes[0:4], "big")
        pos = 4
        keys: list[bytes] = []
        for _ in range(num_entries):
            key_len = int.from_bytes(index_bytes[pos : pos + 4], "big")
            pos += 4
            key = index_bytes[pos : pos + key_len]
            pos += key_len
            offset_bytes = index_bytes[pos : pos + 8]
            pos += 8
            if len(key) != key_len or len(offset_bytes) != 8:
                raise CorruptionError(f"SSTable {self.id} index is truncated")

            self._index[key] = int.from_bytes(offset_bytes, "big")
            keys.append(key)

        # Index is written sorted; sort again rather than trust the file
        self._sorted_keys = sorted(keys)

    def _read_exact(self, fd: int, size: int, offset: int) -> bytes:
        data = os.pread(fd, size, offset)
        if len(data) < size:
            raise CorruptionError(
                f"SSTable {self.id}: short read at offset {offset} "
                f"(wanted {size} bytes, got {len(data)})"
            )
        return data

    def _read_entry_at(self, offset: int) -> tuple[bytes, Value]:
        if self._file is None:
            raise RuntimeError(f"SSTable {self.id} is not open")

        fd = self._file.fileno()

        key_len = int.from_bytes(self._read_exact(fd, 4, offset), "big")
        offset += 4
        key = self._read_exact(fd, key_len, offset)
        offset += key_len

        value_len = int.from_bytes(self._read_exact(fd, 4, offset), "big")
        offset += 4
        value = Value.from_bytes(self._read_exact(fd, value_len, offset))

        return key, value

    @staticmethod
    def create(id: str, file_path: str, entries: Iterable[tuple[bytes, Value]]) -> "SSTable":
        """
        Create a new SSTable from sorted entries.

        The file is written under a .tmp name, fsynced and then renamed,
        so a crash never leaves a half-written table under the final name.

        Args:
            id: Unique identifier.
            file_path: Path for the new file.
            entries: (key, value) tuples in ascending key order.

        Returns:
            The created, opened SSTable.
        """
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        temp_path = f"{file_path}.tmp"

        index: list[tuple[bytes, int]] = []

        with open(temp_path, "wb") as f:
            for key, value in entries:
                index.append((key, f.tell()))

                value_bytes = bytes(value)
                f.write(len(key).to_bytes(4, "big"))
                f.write(key)
                f.write(len(value_bytes).to_bytes(4, "big"))
                f.write(value_bytes)

            index_offset = f.tell()
            f.write(len(index).to_bytes(4, "big"))
            for key, offset in index:
                f.write(len(key).to_bytes(4, "big"))
                f.write(key)
                f.write(offset.to_bytes(8, "big"))

            f.write(index_offset.to_bytes(8, "big"))

            # Ensure durability before rename
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, file_path)

        sstable = SSTable(id, file_path)
        sstable.open()
        return sstable
