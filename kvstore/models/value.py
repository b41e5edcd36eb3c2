"""
Value and ValueType for representing stored data.
"""

from dataclasses import dataclass
from enum import IntEnum

from kvstore.exceptions import CorruptionError


class ValueType(IntEnum):
    """Type of value stored in the database."""

    REGULAR = 0  # Normal value
    TOMBSTONE = 1  # Deletion marker


@dataclass(frozen=True)
class Value:
    """
    A stored value, or the marker left behind by a removal.

    Attributes:
        data: The raw bytes stored (None for tombstones).
        type: Whether this is a regular value or a tombstone.
    """

    data: bytes | None
    type: ValueType = ValueType.REGULAR

    @classmethod
    def regular(cls, data: bytes) -> "Value":
        return cls(data=data, type=ValueType.REGULAR)

    @classmethod
    def tombstone(cls) -> "Value":
        return cls(data=None, type=ValueType.TOMBSTONE)

    def is_tombstone(self) -> bool:
        return self.type == ValueType.TOMBSTONE

    def __bytes__(self) -> bytes:
        """
        Serialize to bytes for storage.

        Format: [type:1][data]
        """
        return self.type.to_bytes(1, "big") + (self.data or b"")

    def size_bytes(self) -> int:
        return 1 + len(self.data or b"")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Value":
        """Deserialize from bytes."""
        if not data:
            raise CorruptionError("Empty value record")

        try:
            value_type = ValueType(data[0])
        except ValueError as e:
            raise CorruptionError(f"Unknown value type byte: {data[0]}") from e

        if value_type == ValueType.TOMBSTONE:
            return cls.tombstone()
        return cls.regular(bytes(data[1:]))
