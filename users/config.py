"""
Service settings read from the environment.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from kvstore import Store
from users.access import AccessMode
from users.repository import UpdateMode


def _default_workers() -> int:
    return (os.cpu_count() or 1) * 2


@dataclass(frozen=True)
class Settings:
    """
    Attributes:
        host: Address the HTTP server binds to.
        port: Port the HTTP server binds to.
        db_path: Directory of the store.
        log_level: Name of the root logging level.
        storage_workers: Threads available for blocking store calls.
        storage_access: How store calls are gated (see users.access).
        update_mode: Whether PUT may create users (see UpdateMode).
        memtable_threshold: Bytes buffered before the store flushes.
        fsync_interval_ms: Milliseconds between WAL fsyncs, 0 for every write.
        max_sstables: SSTable count above which the store compacts.
    """

    host: str = "0.0.0.0"
    port: int = 8080
    db_path: str = "my_db"
    log_level: str = "INFO"
    storage_workers: int = field(default_factory=_default_workers)
    storage_access: AccessMode = AccessMode.SERIALIZED
    update_mode: UpdateMode = UpdateMode.UPSERT
    memtable_threshold: int = Store.DEFAULT_MEMTABLE_THRESHOLD
    fsync_interval_ms: int = 0
    max_sstables: int = Store.DEFAULT_MAX_SSTABLES

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be between 0 and 65535, got {self.port}")
        if self.storage_workers < 1:
            raise ValueError(f"storage_workers must be at least 1, got {self.storage_workers}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")

        # Accept plain strings for the enum fields
        object.__setattr__(self, "storage_access", AccessMode(self.storage_access))
        object.__setattr__(self, "update_mode", UpdateMode(self.update_mode))
        object.__setattr__(self, "log_level", self.log_level.upper())

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables, falling back to defaults.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        for name, attr in (
            ("HOST", "host"),
            ("DB_PATH", "db_path"),
            ("LOG_LEVEL", "log_level"),
            ("STORAGE_ACCESS", "storage_access"),
            ("UPDATE_MODE", "update_mode"),
        ):
            if env.get(name):
                values[attr] = env[name].strip()

        for name, attr in (
            ("PORT", "port"),
            ("STORAGE_WORKERS", "storage_workers"),
            ("MEMTABLE_THRESHOLD", "memtable_threshold"),
            ("FSYNC_INTERVAL_MS", "fsync_interval_ms"),
            ("MAX_SSTABLES", "max_sstables"),
        ):
            if env.get(name):
                try:
                    values[attr] = int(env[name])
                except ValueError as e:
                    raise ValueError(f"{name} must be an integer, got {env[name]!r}") from e

        return cls(**values)
