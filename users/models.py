"""
User record and its storage encoding.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any

from users.exceptions import InvalidPayloadError, RecordDecodeError

USER_FIELDS = ("id", "name", "email")
PAYLOAD_FIELDS = ("name", "email")


@dataclass(frozen=True)
class User:
    """
    A persisted user.

    Attributes:
        id: Opaque identifier assigned at creation; also the storage key.
        name: Free-form UTF-8 text.
        email: Free-form UTF-8 text, not validated.
    """

    id: str
    name: str
    email: str

    @property
    def key(self) -> bytes:
        return self.id.encode("utf-8")

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    def to_bytes(self) -> bytes:
        """Serialize as a JSON object (ASCII-escaped, so any str survives)."""
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes, expected_id: str | None = None) -> "User":
        """
        Deserialize stored bytes.

        Args:
            data: Bytes produced by to_bytes().
            expected_id: The key the bytes were read from; when given, the
                         embedded id must match it.

        Raises:
            RecordDecodeError: If the bytes are not a valid user record.
        """
        try:
            decoded = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RecordDecodeError(expected_id, f"not valid JSON: {e}") from e

        if not isinstance(decoded, dict):
            raise RecordDecodeError(expected_id, "record is not a JSON object")

        for name in USER_FIELDS:
            if not isinstance(decoded.get(name), str):
                raise RecordDecodeError(expected_id, f"field '{name}' missing or not a string")

        user = cls(id=decoded["id"], name=decoded["name"], email=decoded["email"])
        if expected_id is not None and user.id != expected_id:
            raise RecordDecodeError(
                expected_id, f"stored record carries id '{user.id}'"
            )
        return user


@dataclass(frozen=True)
class UserPayload:
    """The client-supplied part of a user; any id in the body is ignored."""

    name: str
    email: str

    @classmethod
    def from_json(cls, body: Any) -> "UserPayload":
        """
        Validate a decoded JSON request body.

        Raises:
            InvalidPayloadError: If body is not an object with string
                                 'name' and 'email' fields.
        """
        if not isinstance(body, dict):
            raise InvalidPayloadError("Request body must be a JSON object")

        missing = [name for name in PAYLOAD_FIELDS if name not in body]
        if missing:
            raise InvalidPayloadError(f"Missing {', '.join(repr(m) for m in missing)} in request body")

        for name in PAYLOAD_FIELDS:
            if not isinstance(body[name], str):
                raise InvalidPayloadError(f"'{name}' must be a string")

        return cls(name=body["name"], email=body["email"])
