"""
One logged write: a key, its new value and the order it was written in.
"""

import struct
from dataclasses import dataclass

from kvstore.exceptions import CorruptionError
from kvstore.models.value import Value

# [seq:8][key_len:4] precedes the key, [value_len:4] precedes the value
_HEADER = struct.Struct(">QI")
_VALUE_LEN = struct.Struct(">I")


@dataclass
class WALEntry:
    """
    Attributes:
        key: Raw key bytes.
        value: The new value; a tombstone for removals.
        seq: Position of the write within its log.
    """

    key: bytes
    value: Value
    seq: int

    def __bytes__(self) -> bytes:
        encoded_value = bytes(self.value)
        return (
            _HEADER.pack(self.seq, len(self.key))
            + self.key
            + _VALUE_LEN.pack(len(encoded_value))
            + encoded_value
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "WALEntry":
        """
        Raises:
            CorruptionError: If the length fields disagree with len(data).
        """
        if len(data) < _HEADER.size + _VALUE_LEN.size:
            raise CorruptionError(f"WAL entry too short: {len(data)} bytes")

        seq, key_len = _HEADER.unpack_from(data, 0)
        key_end = _HEADER.size + key_len
        if key_end + _VALUE_LEN.size > len(data):
            raise CorruptionError(f"WAL entry key length {key_len} overruns entry")

        (value_len,) = _VALUE_LEN.unpack_from(data, key_end)
        value_start = key_end + _VALUE_LEN.size
        if value_start + value_len != len(data):
            raise CorruptionError("WAL entry length fields do not match its size")

        return cls(
            key=bytes(data[_HEADER.size:key_end]),
            value=Value.from_bytes(data[value_start:]),
            seq=seq,
        )
