"""Union-by-id merge of two versions of a SyncRecord.

For each category the result holds every item id seen on either side.
Values come from the incoming side when both have the id ("new wins on
value"); positions come from the first appearance, which is always the
existing side for shared ids ("old wins on position").

The merge is idempotent for an unchanged incoming payload but is not
commutative: the record being updated is privileged.
"""

from typing import Any, Hashable, Iterable

from .records import CATEGORIES, Item, SyncRecord, ensure_payload
from .records import validate_items, validate_sync_code


class OrderedItemIndex:
    """Ordered association of item id to item.

    Keeps an explicit key sequence next to the mapping so that overwriting
    a key never moves it.
    """

    def __init__(self) -> None:
        self._order: list[Hashable] = []
        self._items: dict[Hashable, Item] = {}

    @staticmethod
    def _key(item_id: Hashable) -> Hashable:
        # True == 1 and False == 0 in Python; JSON booleans and numbers are distinct ids
        return (type(item_id) is bool, item_id)

    def put(self, item: Item) -> None:
        """Insert an item, or replace the value stored under its id."""
        key = self._key(item["id"])
        if key not in self._items:
            self._order.append(key)
        self._items[key] = item

    def extend(self, items: Iterable[Item]) -> None:
        for item in items:
            self.put(item)

    def values(self) -> list[Item]:
        """Items in first-appearance order."""
        return [self._items[key] for key in self._order]

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, item_id: object) -> bool:
        return self._key(item_id) in self._items


def merge_items(existing: Iterable[Item], incoming: Iterable[Item]) -> list[Item]:
    """Merge one category list.

    Args:
        existing: Items currently stored.
        incoming: Items submitted by the writer.

    Returns:
        Union of both lists keyed by item id.
    """
    index = OrderedItemIndex()
    index.extend(existing)
    index.extend(incoming)
    return index.values()


def merge_records(
    existing: SyncRecord,
    incoming: dict[str, Any],
    now: int,
) -> SyncRecord:
    """Reconcile a stored record with a partial update.

    The incoming payload is fully validated before any category is merged,
    so a malformed payload never yields a partially merged record.

    Args:
        existing: The stored record.
        incoming: Decoded update body with optional ``gifts``,
            ``expenses``, ``transfers`` and ``syncCode``.
        now: Current time in epoch milliseconds.

    Returns:
        A new merged SyncRecord; ``existing`` is left untouched.

    Raises:
        PayloadError: If the payload is malformed.
    """
    incoming = ensure_payload(incoming)
    incoming_items = {
        category: validate_items(category, incoming.get(category))
        for category in CATEGORIES
    }
    incoming_code = validate_sync_code(incoming.get("syncCode"))

    merged = {
        category: merge_items(existing.items(category), incoming_items[category])
        for category in CATEGORIES
    }

    return SyncRecord(
        gifts=merged["gifts"],
        expenses=merged["expenses"],
        transfers=merged["transfers"],
        sync_code=existing.sync_code or incoming_code,
        created_at=existing.created_at,
        # Clock skew between handler instances must not move updatedAt back
        updated_at=max(now, existing.updated_at),
    )
