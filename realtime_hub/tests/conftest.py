"""
Test configuration and fixtures for the realtime_hub test suite.

This module provides core fixtures and test isolation: a controllable clock,
fresh realtime components per test and a config cache reset.
"""

import os
import random
from collections.abc import Generator

import pytest

os.environ.setdefault("LOGGING_ENVIRONMENT", "unit_test")
os.environ.setdefault("LOGGING_LEVEL", "DEBUG")

# pylint: disable=wrong-import-position  # Reason: environment must be set before config is imported
from realtime_hub.caching.lru_cache import LRUCache
from realtime_hub.config import reset_config
from realtime_hub.realtime.connection_registry import ConnectionRegistry
from realtime_hub.realtime.dispatcher import Dispatcher
from realtime_hub.realtime.room_directory import RoomDirectory
from realtime_hub.realtime.transport import InMemoryTransport

# pylint: disable=redefined-outer-name  # Reason: pytest fixtures are used as function parameters, which triggers this warning


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Each test sees configuration built from its own environment."""
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def deterministic_random_seed() -> Generator[None, None, None]:
    """Seed random so property-style tests are reproducible."""
    random.seed(1337)
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rooms() -> RoomDirectory:
    return RoomDirectory()


@pytest.fixture
def registry(rooms: RoomDirectory, clock: FakeClock) -> ConnectionRegistry:
    """Registry with the default role rooms and a fake clock."""
    return ConnectionRegistry(
        rooms,
        max_connections=1000,
        role_rooms={"admin": "admins", "manager": "managers"},
        clock=clock,
    )


@pytest.fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
def event_cache() -> LRUCache:
    return LRUCache(max_size=100, ttl_seconds=300)


@pytest.fixture
def dispatcher(registry: ConnectionRegistry, transport: InMemoryTransport, event_cache: LRUCache) -> Dispatcher:
    return Dispatcher(registry, transport, send_timeout=1.0, event_cache=event_cache)
