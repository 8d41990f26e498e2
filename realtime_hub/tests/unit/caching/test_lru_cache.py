"""
Unit tests for LRU cache expiration and eviction.

Tests the LRUCache class that backs the diagnostic record of dispatched
events. Time is driven by an injected clock rather than sleeps.
"""

import pytest

from realtime_hub.caching.lru_cache import LRUCache

# pylint: disable=redefined-outer-name  # Reason: pytest fixtures are used as function parameters, which triggers this warning


class StepClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def step_clock():
    return StepClock()


@pytest.fixture
def cache_with_ttl(step_clock):
    """Create an LRUCache with TTL enabled."""
    return LRUCache[str, str](max_size=3, ttl_seconds=10, clock=step_clock)


@pytest.fixture
def cache_without_ttl():
    """Create an LRUCache without TTL."""
    return LRUCache[str, str](max_size=3, ttl_seconds=None)


def test_cache_get_and_put(cache_without_ttl):
    """Test basic storage and hit/miss accounting."""
    cache_without_ttl.put("a", "1")

    assert cache_without_ttl.get("a") == "1"
    assert cache_without_ttl.get("missing") is None
    stats = cache_without_ttl.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5


def test_cache_evicts_least_recently_used(cache_without_ttl):
    """Test the oldest untouched key is evicted at capacity."""
    for key in ("a", "b", "c"):
        cache_without_ttl.put(key, key)
    cache_without_ttl.get("a")

    cache_without_ttl.put("d", "d")

    assert cache_without_ttl.get("b") is None
    assert cache_without_ttl.get("a") == "a"
    assert cache_without_ttl.get_stats()["evictions"] == 1
    assert len(cache_without_ttl) == 3


def test_cache_put_existing_key_updates_value(cache_without_ttl):
    cache_without_ttl.put("a", "1")
    cache_without_ttl.put("a", "2")
    assert cache_without_ttl.get("a") == "2"
    assert cache_without_ttl.size() == 1


def test_cache_entry_expires_after_ttl(cache_with_ttl, step_clock):
    """Test an entry older than the TTL reads as a miss and is dropped."""
    cache_with_ttl.put("a", "1")
    step_clock.now = 10
    assert cache_with_ttl.get("a") == "1"

    step_clock.now = 10.5
    assert cache_with_ttl.get("a") is None
    assert cache_with_ttl.size() == 0


def test_cache_purge_expired(cache_with_ttl, step_clock):
    """Test purge_expired removes only expired entries."""
    cache_with_ttl.put("old", "1")
    step_clock.now = 8
    cache_with_ttl.put("new", "2")
    step_clock.now = 12

    assert cache_with_ttl.purge_expired() == 1
    assert cache_with_ttl.get("new") == "2"
    assert cache_with_ttl.get("old") is None


def test_cache_purge_without_ttl_is_noop(cache_without_ttl):
    cache_without_ttl.put("a", "1")
    assert cache_without_ttl.purge_expired() == 0
    assert cache_without_ttl.size() == 1


def test_cache_delete_and_clear(cache_without_ttl):
    """Test delete reports presence and clear resets everything."""
    cache_without_ttl.put("a", "1")
    cache_without_ttl.put("b", "2")

    assert cache_without_ttl.delete("a") is True
    assert cache_without_ttl.delete("a") is False

    cache_without_ttl.get("b")
    cache_without_ttl.clear()
    stats = cache_without_ttl.get_stats()
    assert stats["size"] == 0
    assert stats["hits"] == 0
    assert stats["evictions"] == 0
