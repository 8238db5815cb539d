"""Synchronization store for shared expense/gift records.

Devices with no direct connection converge on one record, addressed by a
short sync code, through union-by-id merges on the server.
"""

from .errors import (
    InvalidRequestError,
    PayloadError,
    RecordNotFoundError,
    StoreError,
    SyncError,
)
from .identifiers import IdentifierGenerator, is_valid_identifier, normalize_identifier
from .merge import OrderedItemIndex, merge_items, merge_records
from .records import CATEGORIES, SyncRecord
from .service import SyncService
from .store import MemoryRecordStore, RecordStore, SQLiteRecordStore, create_store
from .sync_client import SyncClient

__all__ = [
    "CATEGORIES",
    "IdentifierGenerator",
    "InvalidRequestError",
    "MemoryRecordStore",
    "OrderedItemIndex",
    "PayloadError",
    "RecordNotFoundError",
    "RecordStore",
    "SQLiteRecordStore",
    "StoreError",
    "SyncClient",
    "SyncError",
    "SyncRecord",
    "SyncService",
    "create_store",
    "is_valid_identifier",
    "merge_items",
    "merge_records",
    "normalize_identifier",
]
