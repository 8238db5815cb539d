"""Short shareable sync codes.

Codes are 5 characters drawn from an alphabet without the visually
ambiguous 0, 1, I and O. There is no uniqueness check: with 32^5 possible
codes a collision is possible and simply overwrites the older record.
"""

import random

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 5


def normalize_identifier(code: str) -> str:
    """Return the canonical (uppercase) form of a sync code."""
    return code.upper()


def is_valid_identifier(code: str) -> bool:
    """Check whether a code is well formed after normalization."""
    normalized = normalize_identifier(code)
    return len(normalized) == CODE_LENGTH and all(
        ch in ALPHABET for ch in normalized
    )


class IdentifierGenerator:
    """Generates sync codes from a replaceable random source."""

    def __init__(self, rng: random.Random | None = None):
        """Initialize the generator.

        Args:
            rng: Random source with a ``choice`` method. Defaults to
                ``random.SystemRandom``; pass a seeded ``random.Random``
                for deterministic output.
        """
        self._rng = rng or random.SystemRandom()

    def generate(self) -> str:
        """Sample each position independently from the alphabet."""
        return "".join(self._rng.choice(ALPHABET) for _ in range(CODE_LENGTH))
