"""
User record access layer on top of the kvstore engine.
"""

from users.access import AccessMode, DirectAccess, SerializedAccess, StorageAccess, create_access
from users.config import Settings
from users.exceptions import InvalidPayloadError, RecordDecodeError, StorageFailure
from users.models import User, UserPayload
from users.repository import UpdateMode, UserRepository

__all__ = [
    "AccessMode",
    "DirectAccess",
    "SerializedAccess",
    "StorageAccess",
    "create_access",
    "Settings",
    "InvalidPayloadError",
    "RecordDecodeError",
    "StorageFailure",
    "User",
    "UserPayload",
    "UpdateMode",
    "UserRepository",
]
