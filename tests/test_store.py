"""Tests for the record stores."""

import pytest

from kohasync.config import StoreConfig
from kohasync.sync import (
    MemoryRecordStore,
    SQLiteRecordStore,
    StoreError,
    SyncRecord,
    create_store,
)


@pytest.fixture
def sqlite_store():
    """Create an in-memory SQLite record store."""
    store = SQLiteRecordStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, sqlite_store):
    """Run a test against both backends."""
    if request.param == "memory":
        return MemoryRecordStore()
    return sqlite_store


@pytest.fixture
def record():
    return SyncRecord(
        gifts=[{"id": 1, "amount": 5, "from": "Aunt Mele"}],
        expenses=[{"id": "e1", "amount": 12.5}],
        sync_code="fam",
        created_at=1000,
        updated_at=1000,
    )


class TestRecordStore:
    """Behaviour shared by every backend."""

    def test_get_missing_returns_none(self, store):
        assert store.get("ABCDE") is None

    def test_set_then_get(self, store, record):
        store.set("ABCDE", record)

        assert store.get("ABCDE") == record

    def test_keys_are_case_insensitive(self, store, record):
        """Test lowercase keys address the uppercase record."""
        store.set("abcde", record)

        assert store.get("ABCDE") == record
        assert store.get("AbCdE") == record
        assert store.count() == 1

    def test_set_overwrites(self, store, record):
        store.set("ABCDE", record)
        replacement = SyncRecord(gifts=[{"id": 2}], created_at=5, updated_at=6)

        store.set("ABCDE", replacement)

        assert store.get("ABCDE") == replacement
        assert store.count() == 1

    def test_returned_record_is_a_copy(self, store, record):
        """Test mutating a fetched record does not change the store."""
        store.set("ABCDE", record)

        fetched = store.get("ABCDE")
        fetched.gifts.append({"id": 99})

        assert store.get("ABCDE").gifts == record.gifts

    def test_stats(self, store, record):
        store.set("ABCDE", record)
        store.set("FGHJK", record)

        stats = store.stats()

        assert stats["namespace"] == "koha-sync"
        assert stats["record_count"] == 2
        assert stats["backend"] in ("memory", "sqlite")

    def test_unserializable_record_raises(self, store):
        bad = SyncRecord(gifts=[{"id": 1, "when": object()}])

        with pytest.raises(StoreError):
            store.set("ABCDE", bad)
        assert store.get("ABCDE") is None


class TestMemoryRecordStore:
    """Tests specific to the in-memory store."""

    def test_keys_stored_uppercase(self, record):
        store = MemoryRecordStore()
        store.set("k7mpq", record)

        assert store.keys() == ["K7MPQ"]

    def test_corrupt_blob_raises(self):
        store = MemoryRecordStore()
        store._blobs["ABCDE"] = "{not json"

        with pytest.raises(StoreError, match="Corrupt"):
            store.get("ABCDE")


class TestSQLiteRecordStore:
    """Tests specific to the SQLite store."""

    def test_connect_creates_table(self, sqlite_store):
        tables = sqlite_store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()

        assert "sync_records" in [t[0] for t in tables]

    def test_namespaces_are_isolated(self, tmp_path, record):
        db_path = tmp_path / "sync.db"
        a = SQLiteRecordStore(db_path, namespace="koha-sync")
        b = SQLiteRecordStore(db_path, namespace="other-app")

        a.set("ABCDE", record)

        assert b.get("ABCDE") is None
        assert a.count() == 1
        assert b.count() == 0
        a.close()
        b.close()

    def test_persists_across_connections(self, tmp_path, record):
        db_path = tmp_path / "nested" / "sync.db"
        store = SQLiteRecordStore(db_path)
        store.set("ABCDE", record)
        store.close()

        reopened = SQLiteRecordStore(db_path)

        assert reopened.get("abcde") == record
        assert reopened.stats()["db_path"] == str(db_path)
        reopened.close()

    def test_stored_key_is_uppercase(self, sqlite_store, record):
        sqlite_store.set("k7mpq", record)

        rows = sqlite_store._conn.execute("SELECT key FROM sync_records").fetchall()

        assert [r["key"] for r in rows] == ["K7MPQ"]

    def test_write_failure_raises_store_error(self, sqlite_store, record):
        sqlite_store._conn.execute("DROP TABLE sync_records")

        with pytest.raises(StoreError, match="Failed to write"):
            sqlite_store.set("ABCDE", record)

    def test_count_failure_raises_store_error(self, sqlite_store):
        sqlite_store._conn.execute("DROP TABLE sync_records")

        with pytest.raises(StoreError, match="Failed to count"):
            sqlite_store.count()


class TestCreateStore:
    """Tests for the backend factory."""

    def test_memory_backend(self):
        store = create_store(StoreConfig(backend="memory", namespace="test"))

        assert isinstance(store, MemoryRecordStore)
        assert store.namespace == "test"

    def test_sqlite_backend(self, tmp_path):
        store = create_store(StoreConfig(backend="sqlite", db_path=str(tmp_path / "s.db")))

        assert isinstance(store, SQLiteRecordStore)
        assert store.count() == 0
        store.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown store backend"):
            create_store(StoreConfig(backend="redis"))
