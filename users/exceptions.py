"""
Exceptions raised by the user record access layer.
"""


class UserStoreError(Exception):
    """Base class for access layer errors."""


class InvalidPayloadError(UserStoreError, ValueError):
    """Raised when a request body does not describe a user."""


class StorageFailure(UserStoreError):
    """
    Raised when the storage engine fails or returns unusable data.

    The engine error, if any, is chained as __cause__. Never raised for a
    missing record; absence is reported through return values.
    """

    def __init__(self, operation: str, user_id: str | None, reason: str):
        self.operation = operation
        self.user_id = user_id
        self.reason = reason
        target = f" user {user_id}" if user_id is not None else ""
        super().__init__(f"{operation}{target} failed: {reason}")


class RecordDecodeError(StorageFailure):
    """Raised when stored bytes do not parse as a user record."""

    def __init__(self, user_id: str | None, reason: str):
        super().__init__("decode", user_id, reason)
