"""Create, read and update operations over the record store.

The service holds no state between calls beyond its injected collaborators.
Update is a plain get followed by a set with no version check, so two
concurrent updates to the same code can race: both read the same snapshot
and the later write replaces the earlier one wholesale (lost update).
"""

import logging
import time
from typing import Any, Callable

from .errors import RecordNotFoundError, StoreError
from .identifiers import IdentifierGenerator, normalize_identifier
from .merge import merge_records
from .records import SyncRecord
from .store import RecordStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class SyncService:
    """Sync operations against an injected store."""

    def __init__(
        self,
        store: RecordStore,
        generator: IdentifierGenerator | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """Initialize the service.

        Args:
            store: Record store to read from and write to.
            generator: Sync code generator. Defaults to a system-random one.
            clock: Returns the current time in epoch milliseconds.
        """
        self.store = store
        self.generator = generator or IdentifierGenerator()
        self.clock = clock or now_ms

    def create(self, payload: Any) -> str:
        """Store a new record under a freshly generated code.

        No existence check is made; a colliding code overwrites the
        record already stored under it.

        Args:
            payload: Decoded request body.

        Returns:
            The new sync code.

        Raises:
            PayloadError: If the body is malformed.
            StoreError: If the record could not be written.
        """
        record = SyncRecord.from_payload(payload, now=self.clock())
        sync_id = self.generator.generate()

        self._persist(sync_id, record)
        logger.info(
            f"Created sync record {sync_id}",
            extra={"sync_id": sync_id, "items": record.item_counts()},
        )
        return sync_id

    def read(self, sync_id: str) -> SyncRecord:
        """Fetch the record stored under a code (case-insensitive).

        Raises:
            RecordNotFoundError: If no record exists.
            StoreError: If the store could not be read.
        """
        key = normalize_identifier(sync_id)
        record = self.store.get(key)
        if record is None:
            logger.warning(f"Read of unknown sync record {key}", extra={"sync_id": key})
            raise RecordNotFoundError(key)

        logger.debug(f"Read sync record {key}", extra={"sync_id": key})
        return record

    def update(self, sync_id: str, payload: Any) -> SyncRecord:
        """Merge a payload into an existing record and store the result.

        An update never creates a record.

        Args:
            sync_id: Sync code (case-insensitive).
            payload: Decoded request body with optional category lists.

        Returns:
            The merged record as stored.

        Raises:
            RecordNotFoundError: If no record exists; nothing is written.
            PayloadError: If the body is malformed; nothing is written.
            StoreError: If the store could not be read or written.
        """
        key = normalize_identifier(sync_id)
        existing = self.store.get(key)
        if existing is None:
            logger.warning(f"Update of unknown sync record {key}", extra={"sync_id": key})
            raise RecordNotFoundError(key)

        merged = merge_records(existing, payload, now=self.clock())
        self._persist(key, merged)

        logger.info(
            f"Updated sync record {key}",
            extra={"sync_id": key, "items": merged.item_counts()},
        )
        return merged

    def _persist(self, key: str, record: SyncRecord) -> None:
        try:
            self.store.set(key, record)
        except StoreError as e:
            logger.error(f"Failed to store sync record {key}: {e}", extra={"sync_id": key})
            raise
