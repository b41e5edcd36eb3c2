"""
Shared pytest fixtures for store and user access layer tests.
"""

import os
import tempfile
from concurrent.futures import ThreadPoolExecutor

import pytest

from kvstore import Store
from kvstore.models.value import Value
from users.access import create_access
from users.repository import UserRepository


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def store(temp_dir):
    """Provide an open Store that is closed after the test."""
    with Store(storage_dir=temp_dir) as st:
        yield st


@pytest.fixture
def executor():
    """Provide a worker pool for blocking store calls."""
    pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="storage")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture(params=["serialized", "direct"])
def repository(request, store, executor):
    """Provide a UserRepository over a real store, once per access mode."""
    return UserRepository(create_access(request.param, store, executor))


@pytest.fixture
def sstable_path(temp_dir):
    """Provide a path for SSTable file."""
    return os.path.join(temp_dir, "test.sst")


@pytest.fixture
def wal_path(temp_dir):
    """Provide a path for WAL file."""
    return os.path.join(temp_dir, "test.wal")


@pytest.fixture
def sample_entries():
    """Provide sorted sample key-value entries."""
    return [
        (b"key1", Value.regular(b"value1")),
        (b"key2", Value.regular(b"value2")),
        (b"key3", Value.tombstone()),
    ]
