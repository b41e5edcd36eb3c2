"""
UserRepository - create, read, update and delete users in the store.
"""

import logging
import uuid
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

from kvstore import Store, StoreError
from users.access import StorageAccess
from users.exceptions import StorageFailure
from users.models import User
from users.sequencer import KeySequencer

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UpdateMode(str, Enum):
    UPSERT = "upsert"  # write unconditionally, creating the user if absent
    STRICT = "strict"  # only replace a user that already exists


def new_user_id() -> str:
    return str(uuid.uuid4())


class UserRepository:
    """
    Maps user operations onto single store interactions.

    Each operation touches exactly one key (the user id) with one store
    call: a get, an insert or a remove. Strict updates are the one
    exception, pairing a get with an insert inside the same store call.
    Calls run through a StorageAccess so they never block the event loop,
    and through a KeySequencer so calls on one id finish in issue order.

    Absence is reported through return values (None / False); engine and
    decoding failures raise StorageFailure. Nothing is retried.
    """

    def __init__(
        self,
        access: StorageAccess,
        update_mode: UpdateMode | str = UpdateMode.UPSERT,
        id_factory: Callable[[], str] = new_user_id,
    ) -> None:
        self._access = access
        self._update_mode = UpdateMode(update_mode)
        self._id_factory = id_factory
        self._sequencer = KeySequencer()

    @property
    def update_mode(self) -> UpdateMode:
        return self._update_mode

    async def _dispatch(self, action: str, user_id: str, operation: Callable[[Store], T]) -> T:
        # Cancellation releases the key while the worker thread may still be running the call
        async with self._sequencer.hold(user_id):
            try:
                return await self._access.run(operation)
            except StoreError as e:
                raise StorageFailure(action, user_id, str(e)) from e

    async def create(self, name: str, email: str) -> User:
        """
        Store a new user under a freshly minted id.

        Raises:
            StorageFailure: If the write fails.
        """
        user = User(id=self._id_factory(), name=name, email=email)
        key, value = user.key, user.to_bytes()

        await self._dispatch("create", user.id, lambda store: store.insert(key, value))

        logger.debug("Created user %s", user.id)
        return user

    async def read(self, user_id: str) -> User | None:
        """
        Fetch a user.

        Returns:
            The user, or None if no record exists under user_id.

        Raises:
            RecordDecodeError: If the stored bytes are not a user record.
            StorageFailure: If the read fails.
        """
        key = user_id.encode("utf-8")
        data = await self._dispatch("read", user_id, lambda store: store.get(key))
        if data is None:
            return None
        return User.from_bytes(data, expected_id=user_id)

    async def update(self, user_id: str, name: str, email: str) -> User | None:
        """
        Replace name and email of the user stored under user_id.

        The id always comes from the caller-supplied path, never the body.
        In upsert mode the write is unconditional and creates the user if
        needed. In strict mode nothing is written for an unknown id.

        Returns:
            The stored user, or None in strict mode when user_id is unknown.

        Raises:
            StorageFailure: If the write fails.
        """
        user = User(id=user_id, name=name, email=email)
        key, value = user.key, user.to_bytes()

        if self._update_mode is UpdateMode.STRICT:

            def replace_existing(store: Store) -> bool:
                if store.get(key) is None:
                    return False
                store.insert(key, value)
                return True

            if not await self._dispatch("update", user_id, replace_existing):
                return None
        else:
            previous = await self._dispatch("update", user_id, lambda store: store.insert(key, value))
            if previous is None:
                logger.info("Update created user %s", user_id)

        return user

    async def delete(self, user_id: str) -> bool:
        """
        Remove a user.

        Returns:
            True if a record was removed, False if there was nothing to remove.

        Raises:
            StorageFailure: If the removal fails.
        """
        key = user_id.encode("utf-8")
        previous = await self._dispatch("delete", user_id, lambda store: store.remove(key))
        return previous is not None
