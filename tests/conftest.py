"""Shared fixtures for kohasync tests."""

import random

import pytest

from kohasync.sync import IdentifierGenerator, MemoryRecordStore, SyncService


class StepClock:
    """Deterministic epoch-millisecond clock that advances on every call."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def memory_store():
    """Create an empty in-memory record store."""
    return MemoryRecordStore()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def service(memory_store, clock):
    """Create a sync service with seeded randomness and a step clock."""
    return SyncService(
        memory_store,
        generator=IdentifierGenerator(random.Random(42)),
        clock=clock,
    )
