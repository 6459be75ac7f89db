"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from relay.routing.clock import FixedClock
from relay.routing.memory_store import InMemoryRoutingDataStore
from relay.routing.registry import RoutingRegistry

START = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def clock() -> FixedClock:
    """A clock starting at ``START`` that ticks one second per read."""
    return FixedClock(START, step=timedelta(seconds=1))


@pytest.fixture
def store() -> InMemoryRoutingDataStore:
    return InMemoryRoutingDataStore()


@pytest.fixture
def registry(store: InMemoryRoutingDataStore, clock: FixedClock) -> RoutingRegistry:
    """A registry over an empty in-memory store with a deterministic clock."""
    return RoutingRegistry(store, clock, reject_requests_without_aggregation=False)


@pytest.fixture(autouse=True)
def _reset_registry():
    """Keep the registry singleton from leaking between tests."""
    RoutingRegistry._reset()
    yield
    RoutingRegistry._reset()
