"""
Tests for the user record codec and request payload validation.
"""

import json

import pytest

from users.exceptions import InvalidPayloadError, RecordDecodeError, StorageFailure
from users.models import User, UserPayload


class TestUserCodec:
    """Storage encoding of users."""

    @pytest.mark.parametrize(
        "name,email",
        [
            ("Ann", "ann@x.com"),
            ("", ""),
            ("Zoë Ångström", "zoë@exämple.org"),
            ("名前", "メール"),
            ('quote " and \\ backslash', "line\nbreak"),
            ("emoji 🚀", "\u0000nul"),
        ],
    )
    def test_round_trip(self, name, email):
        user = User(id="0b7c3f1e", name=name, email=email)

        assert User.from_bytes(user.to_bytes()) == user

    def test_encoding_is_json_object(self):
        user = User(id="abc", name="Ann", email="ann@x.com")

        assert json.loads(user.to_bytes()) == {"id": "abc", "name": "Ann", "email": "ann@x.com"}

    def test_key_is_id(self):
        assert User(id="abc", name="n", email="e").key == b"abc"

    def test_expected_id_matches(self):
        user = User(id="abc", name="n", email="e")

        assert User.from_bytes(user.to_bytes(), expected_id="abc") == user

    def test_expected_id_mismatch(self):
        data = User(id="abc", name="n", email="e").to_bytes()

        with pytest.raises(RecordDecodeError) as exc_info:
            User.from_bytes(data, expected_id="xyz")

        assert exc_info.value.user_id == "xyz"

    @pytest.mark.parametrize(
        "data",
        [
            b"\xff\xfe",
            b"not json",
            b"[1, 2, 3]",
            b'{"id": "abc", "name": "n"}',
            b'{"id": "abc", "name": "n", "email": 42}',
        ],
    )
    def test_undecodable_bytes(self, data):
        with pytest.raises(RecordDecodeError):
            User.from_bytes(data)

    def test_decode_error_is_storage_failure(self):
        with pytest.raises(StorageFailure):
            User.from_bytes(b"garbage")


class TestUserPayload:
    """Request body validation."""

    def test_valid(self):
        payload = UserPayload.from_json({"name": "Ann", "email": "ann@x.com"})

        assert payload == UserPayload(name="Ann", email="ann@x.com")

    def test_ignores_client_id(self):
        payload = UserPayload.from_json({"id": "mine", "name": "Ann", "email": "ann@x.com"})

        assert not hasattr(payload, "id")

    @pytest.mark.parametrize(
        "body",
        [
            None,
            ["Ann", "ann@x.com"],
            {"name": "Ann"},
            {"email": "ann@x.com"},
            {"name": 1, "email": "ann@x.com"},
            {"name": "Ann", "email": None},
        ],
    )
    def test_invalid(self, body):
        with pytest.raises(InvalidPayloadError):
            UserPayload.from_json(body)

    def test_invalid_payload_is_value_error(self):
        with pytest.raises(ValueError):
            UserPayload.from_json({})
