"""
Tests for the storage access strategies.
"""

import asyncio
import threading

import pytest

from tests.fakes import RecordingStore, ThreadSafeRecordingStore
from users.access import AccessMode, DirectAccess, SerializedAccess, create_access


class TestCreateAccess:
    """Strategy selection."""

    def test_serialized(self, executor):
        access = create_access("serialized", RecordingStore(), executor)

        assert isinstance(access, SerializedAccess)
        assert access.mode is AccessMode.SERIALIZED

    def test_direct(self, executor):
        access = create_access(AccessMode.DIRECT, ThreadSafeRecordingStore(), executor)

        assert isinstance(access, DirectAccess)

    def test_direct_requires_thread_safe_store(self, executor):
        with pytest.raises(ValueError, match="not thread-safe"):
            create_access("direct", RecordingStore(), executor)

    def test_unknown_mode(self, executor):
        with pytest.raises(ValueError):
            create_access("optimistic", RecordingStore(), executor)


class TestOffloading:
    """Store calls run on the worker pool, never on the event loop."""

    @pytest.mark.parametrize("mode,store_cls", [
        ("serialized", RecordingStore),
        ("direct", ThreadSafeRecordingStore),
    ])
    async def test_runs_on_worker_threads(self, executor, mode, store_cls):
        store = store_cls()
        access = create_access(mode, store, executor)

        await access.run(lambda s: s.insert(b"k", b"v"))

        assert store.threads
        assert all(name.startswith("storage") for name in store.threads)
        assert threading.current_thread().name not in store.threads

    @pytest.mark.parametrize("mode,store_cls", [
        ("serialized", RecordingStore),
        ("direct", ThreadSafeRecordingStore),
    ])
    async def test_event_loop_keeps_running(self, executor, mode, store_cls):
        store = store_cls(delay=0.3)
        access = create_access(mode, store, executor)
        ticks = 0

        async def ticker() -> None:
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        tick_task = asyncio.create_task(ticker())
        try:
            await access.run(lambda s: s.get(b"k"))
        finally:
            tick_task.cancel()

        # A blocked loop would not tick at all during the 0.3s call
        assert ticks >= 5

    async def test_exceptions_propagate(self, executor):
        access = create_access("serialized", RecordingStore(), executor)

        def boom(store):
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await access.run(boom)

    async def test_gate_released_after_failure(self, executor):
        store = RecordingStore()
        access = create_access("serialized", store, executor)

        def boom(s):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await access.run(boom)

        assert await access.run(lambda s: s.insert(b"k", b"v")) is None


class TestGating:
    """Serialized access admits one call at a time; direct access does not."""

    async def test_serialized_never_overlaps(self, executor):
        store = RecordingStore(delay=0.02)
        access = create_access("serialized", store, executor)

        await asyncio.gather(*(
            access.run(lambda s, i=i: s.insert(f"key{i}".encode(), b"v"))
            for i in range(12)
        ))

        assert len(store.calls) == 12
        assert store.max_in_flight == 1

    async def test_direct_allows_overlap(self, executor):
        store = ThreadSafeRecordingStore(delay=0.1)
        access = create_access("direct", store, executor)

        await asyncio.gather(*(
            access.run(lambda s, i=i: s.get(f"key{i}".encode()))
            for i in range(4)
        ))

        assert store.max_in_flight > 1
