"""The SyncRecord data model and its JSON blob form."""

from dataclasses import dataclass, field
from typing import Any

from .errors import PayloadError

CATEGORIES = ("gifts", "expenses", "transfers")

Item = dict[str, Any]


def validate_items(category: str, items: Any) -> list[Item]:
    """Check one category list from a payload.

    Args:
        category: Category name, used in error messages.
        items: Raw value from the decoded JSON payload. ``None`` counts as
            an empty list.

    Returns:
        The items as a new list.

    Raises:
        PayloadError: If the value is not a list of objects with a
            hashable ``id``.
    """
    if items is None:
        return []
    if not isinstance(items, list):
        raise PayloadError(f"'{category}' must be a list, got {type(items).__name__}")

    validated = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise PayloadError(f"{category}[{position}] must be an object")
        if "id" not in item:
            raise PayloadError(f"{category}[{position}] is missing 'id'")
        if isinstance(item["id"], (dict, list)):
            raise PayloadError(f"{category}[{position}] has a non-scalar 'id'")
        validated.append(item)
    return validated


def validate_sync_code(value: Any) -> str | None:
    """Check the optional ``syncCode`` field of a payload."""
    if value is None or isinstance(value, str):
        return value
    raise PayloadError(f"'syncCode' must be a string, got {type(value).__name__}")


def ensure_payload(payload: Any) -> dict[str, Any]:
    """Check that a decoded request body is a JSON object."""
    if not isinstance(payload, dict):
        raise PayloadError("Request body must be a JSON object")
    return payload


@dataclass
class SyncRecord:
    """Shared state for one group, stored under its sync code."""

    gifts: list[Item] = field(default_factory=list)
    expenses: list[Item] = field(default_factory=list)
    transfers: list[Item] = field(default_factory=list)
    sync_code: str | None = None
    created_at: int = 0  # epoch milliseconds
    updated_at: int = 0  # epoch milliseconds

    def items(self, category: str) -> list[Item]:
        """Get the item list for a category."""
        if category not in CATEGORIES:
            raise KeyError(category)
        return getattr(self, category)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON blob shape shared with clients."""
        return {
            "gifts": self.gifts,
            "expenses": self.expenses,
            "transfers": self.transfers,
            "syncCode": self.sync_code,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncRecord":
        """Create from a stored blob."""
        return cls(
            gifts=list(data.get("gifts") or []),
            expenses=list(data.get("expenses") or []),
            transfers=list(data.get("transfers") or []),
            sync_code=data.get("syncCode"),
            created_at=data.get("createdAt") or 0,
            updated_at=data.get("updatedAt") or 0,
        )

    @classmethod
    def from_payload(cls, payload: Any, now: int) -> "SyncRecord":
        """Build a brand new record from a create request body.

        Raises:
            PayloadError: If the body is malformed.
        """
        payload = ensure_payload(payload)
        return cls(
            gifts=validate_items("gifts", payload.get("gifts")),
            expenses=validate_items("expenses", payload.get("expenses")),
            transfers=validate_items("transfers", payload.get("transfers")),
            sync_code=validate_sync_code(payload.get("syncCode")),
            created_at=now,
            updated_at=now,
        )

    def item_counts(self) -> dict[str, int]:
        """Number of items per category, for logging."""
        return {category: len(self.items(category)) for category in CATEGORIES}
