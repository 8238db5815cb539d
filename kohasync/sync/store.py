"""Key-value storage for sync records.

Each record is one JSON blob keyed by the uppercase sync code inside a
namespace. Stores offer plain get/set only: there is no compare-and-swap,
so an update is always a separate read followed by a write.
"""

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from ..config import StoreConfig
from .errors import StoreError
from .identifiers import normalize_identifier
from .records import SyncRecord

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "koha-sync"

STORE_SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_records (
    namespace TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    stored_at TEXT NOT NULL,
    PRIMARY KEY (namespace, key)
);
"""


class RecordStore(ABC):
    """Abstract get/set store for sync records.

    Keys are normalized to uppercase before every backend access.
    """

    backend_name = "abstract"

    def __init__(self, namespace: str = DEFAULT_NAMESPACE):
        self.namespace = namespace

    def get(self, key: str) -> SyncRecord | None:
        """Fetch the record stored under a key.

        Returns:
            The record, or None if nothing is stored.

        Raises:
            StoreError: If the backend fails or the blob is corrupt.
        """
        blob = self._get_blob(normalize_identifier(key))
        if blob is None:
            return None
        try:
            return SyncRecord.from_dict(json.loads(blob))
        except (ValueError, TypeError, AttributeError) as e:
            raise StoreError(f"Corrupt record under {key}: {e}") from e

    def set(self, key: str, record: SyncRecord) -> None:
        """Store a record, replacing whatever was there.

        Raises:
            StoreError: If the write did not succeed.
        """
        try:
            blob = json.dumps(record.to_dict())
        except (TypeError, ValueError) as e:
            raise StoreError(f"Record for {key} is not serializable: {e}") from e
        self._set_blob(normalize_identifier(key), blob)

    def stats(self) -> dict[str, Any]:
        """Get store statistics for status reporting."""
        return {
            "backend": self.backend_name,
            "namespace": self.namespace,
            "record_count": self.count(),
        }

    @abstractmethod
    def count(self) -> int:
        """Number of records in this namespace."""
        pass

    @abstractmethod
    def _get_blob(self, key: str) -> str | None:
        pass

    @abstractmethod
    def _set_blob(self, key: str, blob: str) -> None:
        pass


class MemoryRecordStore(RecordStore):
    """In-process store, for tests and throwaway servers.

    Blobs are kept serialized so callers never share objects with the store.
    """

    backend_name = "memory"

    def __init__(self, namespace: str = DEFAULT_NAMESPACE):
        super().__init__(namespace)
        self._blobs: dict[str, str] = {}

    def keys(self) -> list[str]:
        return list(self._blobs)

    def count(self) -> int:
        return len(self._blobs)

    def _get_blob(self, key: str) -> str | None:
        return self._blobs.get(key)

    def _set_blob(self, key: str, blob: str) -> None:
        self._blobs[key] = blob


class SQLiteRecordStore(RecordStore):
    """SQLite-backed store with one row per record."""

    backend_name = "sqlite"

    def __init__(self, db_path: str | Path, namespace: str = DEFAULT_NAMESPACE):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
            namespace: Namespace separating this application's records.
        """
        super().__init__(namespace)
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        # Serializes single statements only; get and set stay separate
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(STORE_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Could not open {self.db_path}: {e}") from e

        logger.info(f"SQLiteRecordStore connected to {self.db_path} ({self.namespace})")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    def count(self) -> int:
        conn = self._ensure_connected()
        try:
            with self._lock:
                row = conn.execute(
                    "SELECT COUNT(*) FROM sync_records WHERE namespace = ?",
                    (self.namespace,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to count records: {e}") from e
        return row[0]

    def stats(self) -> dict[str, Any]:
        stats = super().stats()
        stats["db_path"] = str(self.db_path)
        if self.db_path.exists():
            stats["db_size_mb"] = round(self.db_path.stat().st_size / (1024 * 1024), 2)
        return stats

    def _get_blob(self, key: str) -> str | None:
        conn = self._ensure_connected()
        try:
            with self._lock:
                row = conn.execute(
                    "SELECT value FROM sync_records WHERE namespace = ? AND key = ?",
                    (self.namespace, key),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read {key}: {e}") from e
        return row["value"] if row else None

    def _set_blob(self, key: str, blob: str) -> None:
        conn = self._ensure_connected()
        try:
            with self._lock:
                conn.execute(
                    """
                    INSERT INTO sync_records (namespace, key, value, stored_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(namespace, key)
                    DO UPDATE SET value = excluded.value, stored_at = excluded.stored_at
                    """,
                    (self.namespace, key, blob, datetime.now().isoformat()),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write {key}: {e}") from e

        logger.debug(f"Stored {key} in {self.namespace}")


def create_store(config: StoreConfig) -> RecordStore:
    """Create the store backend selected in configuration."""
    if config.backend == "memory":
        return MemoryRecordStore(namespace=config.namespace)
    if config.backend == "sqlite":
        store = SQLiteRecordStore(config.db_path, namespace=config.namespace)
        store.connect()
        return store
    raise ValueError(f"Unknown store backend: {config.backend}")
