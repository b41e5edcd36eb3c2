"""
Tests for the blocking Store.
"""

import errno
import os
import threading

import pytest

from kvstore import CorruptionError, Store, StoreClosedError, StoreError
from kvstore.models.sstable import SSTable
from kvstore.models.wal import WAL


def _sstable_files(storage_dir: str) -> list[str]:
    return sorted(f for f in os.listdir(os.path.join(storage_dir, "sstables")) if f.endswith(".sst"))


class TestStoreOperations:
    """Point reads, writes and removals."""

    def test_insert_and_get(self, store):
        assert store.insert(b"key1", b"value1") is None
        assert store.insert(b"key2", b"value2") is None

        assert store.get(b"key1") == b"value1"
        assert store.get(b"key2") == b"value2"
        assert store.get(b"key3") is None

    def test_insert_returns_previous(self, store):
        store.insert(b"key", b"v1")

        assert store.insert(b"key", b"v2") == b"v1"
        assert store.get(b"key") == b"v2"

    def test_remove_returns_previous(self, store):
        store.insert(b"key", b"value")

        assert store.remove(b"key") == b"value"
        assert store.get(b"key") is None

    def test_remove_absent(self, store):
        assert store.remove(b"never-written") is None

    def test_remove_twice(self, store):
        store.insert(b"key", b"value")
        store.remove(b"key")

        assert store.remove(b"key") is None

    def test_reinsert_after_remove(self, store):
        store.insert(b"key", b"v1")
        store.remove(b"key")

        assert store.insert(b"key", b"v2") is None
        assert store.get(b"key") == b"v2"

    def test_empty_value(self, store):
        store.insert(b"key", b"")

        assert store.get(b"key") == b""
        assert store.remove(b"key") == b""

    def test_rejects_non_bytes(self, store):
        with pytest.raises(TypeError):
            store.get("key")
        with pytest.raises(TypeError):
            store.insert(b"key", "value")

    def test_declares_thread_safety(self, store):
        assert Store.thread_safe is True


class TestStoreValidation:
    """Constructor argument checks."""

    def test_rejects_bad_threshold(self, temp_dir):
        with pytest.raises(ValueError):
            Store(temp_dir, memtable_threshold=0)

    def test_rejects_bad_fsync_interval(self, temp_dir):
        with pytest.raises(ValueError):
            Store(temp_dir, fsync_interval_ms=20000)

    def test_rejects_bad_max_sstables(self, temp_dir):
        with pytest.raises(ValueError):
            Store(temp_dir, max_sstables=0)

    def test_rejects_empty_dir(self):
        with pytest.raises(ValueError):
            Store("  ")


class TestStoreDurability:
    """Persistence, flushing, compaction and recovery."""

    def test_data_survives_reopen(self, temp_dir):
        with Store(temp_dir) as store:
            store.insert(b"a", b"1")
            store.insert(b"b", b"2")
            store.remove(b"a")

        with Store(temp_dir) as store:
            assert store.get(b"a") is None
            assert store.get(b"b") == b"2"

    def test_recovers_from_wal_without_close(self, temp_dir):
        store = Store(temp_dir)
        store.insert(b"key", b"value")
        store.remove(b"key")
        store.insert(b"other", b"kept")
        # No close: simulate a crash, leaving only the WAL

        recovered = Store(temp_dir)
        try:
            assert recovered.get(b"key") is None
            assert recovered.get(b"other") == b"kept"
            assert os.listdir(os.path.join(temp_dir, "wal")) == ["wal_1.wal"]
        finally:
            recovered.close()

    def test_flush_on_threshold(self, temp_dir):
        with Store(temp_dir, memtable_threshold=64) as store:
            for i in range(10):
                store.insert(f"key{i}".encode(), b"x" * 20)

            assert len(_sstable_files(temp_dir)) > 0
            for i in range(10):
                assert store.get(f"key{i}".encode()) == b"x" * 20

    def test_tombstone_masks_flushed_value(self, temp_dir):
        with Store(temp_dir, max_sstables=100) as store:
            store.insert(b"key", b"old")
            store.flush()
            assert store.remove(b"key") == b"old"
            store.flush()

            assert store.get(b"key") is None

    def test_newest_sstable_wins(self, temp_dir):
        with Store(temp_dir, max_sstables=100) as store:
            store.insert(b"key", b"v1")
            store.flush()
            store.insert(b"key", b"v2")
            store.flush()

        with Store(temp_dir, max_sstables=100) as store:
            assert store.get(b"key") == b"v2"

    def test_compaction_merges_tables(self, temp_dir):
        with Store(temp_dir, max_sstables=2) as store:
            store.insert(b"a", b"1")
            store.flush()
            store.insert(b"b", b"2")
            store.flush()
            store.remove(b"a")
            store.insert(b"b", b"3")
            store.flush()

            assert len(_sstable_files(temp_dir)) == 1
            assert store.get(b"a") is None
            assert store.get(b"b") == b"3"

        with Store(temp_dir, max_sstables=2) as store:
            assert store.get(b"a") is None
            assert store.get(b"b") == b"3"

    def test_orphaned_temp_files_removed(self, temp_dir):
        Store(temp_dir).close()
        orphan = os.path.join(temp_dir, "sstables", "9.sst.tmp")
        with open(orphan, "wb") as f:
            f.write(b"partial")

        Store(temp_dir).close()

        assert not os.path.exists(orphan)

    def test_corrupt_wal_fails_open(self, temp_dir):
        store = Store(temp_dir)
        store.insert(b"key", b"value")
        wal_file = os.path.join(temp_dir, "wal", "wal_0.wal")

        with open(wal_file, "r+b") as f:
            f.seek(8)
            f.write(b"\xff\xff")

        with pytest.raises(CorruptionError):
            Store(temp_dir)


class TestStoreFailures:
    """Disk failures during flushes leave the store consistent and writable."""

    def test_failed_flush_rejects_write_and_keeps_data(self, temp_dir, monkeypatch):
        real_create = SSTable.create
        failures = [OSError(errno.ENOSPC, "No space left on device")]

        def flaky_create(*args, **kwargs):
            if failures:
                raise failures.pop()
            return real_create(*args, **kwargs)

        monkeypatch.setattr(SSTable, "create", staticmethod(flaky_create))

        with Store(temp_dir, memtable_threshold=64) as store:
            store.insert(b"a", b"x" * 100)

            with pytest.raises(StoreError):
                store.insert(b"b", b"y" * 100)
            assert store.get(b"b") is None
            assert store.get(b"a") == b"x" * 100

            # The retried flush succeeds and the write goes through
            assert store.insert(b"b", b"y" * 100) is None
            assert store.get(b"b") == b"y" * 100
            assert len(_sstable_files(temp_dir)) == 1

        with Store(temp_dir) as store:
            assert store.get(b"a") == b"x" * 100
            assert store.get(b"b") == b"y" * 100

    def test_repeated_flush_failures_apply_nothing(self, temp_dir, monkeypatch):
        def failing_create(*args, **kwargs):
            raise OSError(errno.EIO, "I/O error")

        store = Store(temp_dir, memtable_threshold=64)
        store.insert(b"a", b"x" * 100)
        monkeypatch.setattr(SSTable, "create", staticmethod(failing_create))

        for _ in range(3):
            with pytest.raises(StoreError):
                store.insert(b"b", b"y" * 100)
        with pytest.raises(StoreError):
            store.flush()
        assert store.get(b"b") is None
        assert _sstable_files(temp_dir) == []

        # Simulate a crash: recovery replays the WAL that was never retired
        monkeypatch.undo()
        with Store(temp_dir) as recovered:
            assert recovered.get(b"a") == b"x" * 100
            assert recovered.get(b"b") is None

    def test_failed_log_cleanup_keeps_store_writable(self, temp_dir, monkeypatch):
        real_destroy = WAL.destroy
        failed = []

        def flaky_destroy(wal):
            if not failed:
                failed.append(wal.id)
                raise OSError(errno.EIO, "I/O error")
            real_destroy(wal)

        with Store(temp_dir) as store:
            store.insert(b"a", b"1")
            monkeypatch.setattr(WAL, "destroy", flaky_destroy)

            with pytest.raises(StoreError):
                store.flush()

            store.insert(b"b", b"2")
            assert store.get(b"a") == b"1"
            assert store.get(b"b") == b"2"


class TestStoreLifecycle:
    """Close semantics."""

    def test_operations_after_close(self, temp_dir):
        store = Store(temp_dir)
        store.close()

        with pytest.raises(StoreClosedError):
            store.get(b"key")
        with pytest.raises(StoreError):
            store.insert(b"key", b"value")

    def test_close_is_idempotent(self, temp_dir):
        store = Store(temp_dir)
        store.close()
        store.close()

        assert store.closed

    def test_close_leaves_no_wal(self, temp_dir):
        with Store(temp_dir) as store:
            store.insert(b"key", b"value")

        assert os.listdir(os.path.join(temp_dir, "wal")) == []


class TestStoreThreads:
    """Concurrent use from several threads."""

    def test_concurrent_writers(self, temp_dir):
        with Store(temp_dir, memtable_threshold=512) as store:

            def writer(writer_id: int) -> None:
                for i in range(100):
                    store.insert(f"w{writer_id}_k{i}".encode(), f"value{i}".encode())

            threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            for writer_id in range(8):
                for i in range(100):
                    assert store.get(f"w{writer_id}_k{i}".encode()) == f"value{i}".encode()

    def test_each_insert_sees_one_previous(self, store):
        """Racing inserts on one key each observe a distinct previous value."""
        previous: list[bytes | None] = []
        lock = threading.Lock()

        def writer(writer_id: int) -> None:
            for i in range(50):
                result = store.insert(b"shared", f"{writer_id}-{i}".encode())
                with lock:
                    previous.append(result)

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert previous.count(None) == 1
        non_empty = [p for p in previous if p is not None]
        assert len(non_empty) == len(set(non_empty)) == 199
