"""Exceptions raised by the sync store.

The HTTP layer maps these onto status codes; nothing in the core retries.
"""


class SyncError(Exception):
    """Base exception for sync operations."""

    pass


class RecordNotFoundError(SyncError):
    """No record is stored under the requested identifier."""

    def __init__(self, sync_id: str):
        super().__init__(f"No sync record for {sync_id}")
        self.sync_id = sync_id


class InvalidRequestError(SyncError):
    """The request does not match any sync operation."""

    pass


class PayloadError(SyncError):
    """The submitted payload could not be decoded into a record."""

    pass


class StoreError(SyncError):
    """The backing key-value store failed to read or write."""

    pass
