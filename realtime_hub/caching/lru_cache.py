"""
LRU cache with optional time-to-live.

Backs the dispatcher's diagnostic record of recently sent events. Entries are
best-effort: they may be evicted or expire at any time and are never used to
replay or guarantee delivery.
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Thread-safe LRU (Least Recently Used) cache implementation.

    The least recently used item is evicted once max_size is reached. With
    ttl_seconds set, entries older than the TTL read as misses and are
    dropped lazily or by purge_expired().
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the LRU cache.

        Args:
            max_size: Maximum number of items to store in the cache
            ttl_seconds: Time-to-live in seconds for cached items (None for no expiration)
            clock: Time source, injectable for tests
        """
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: OrderedDict[K, tuple[V, float]] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

        logger.debug("LRU cache initialized", max_size=max_size, ttl_seconds=ttl_seconds)

    def _is_expired(self, stored_at: float, now: float) -> bool:
        return self.ttl_seconds is not None and now - stored_at > self.ttl_seconds

    def get(self, key: K) -> V | None:
        """
        Get an item from the cache.

        Args:
            key: The key to look up

        Returns:
            The cached value if found and not expired, None otherwise
        """
        with self._lock:
            if key not in self._cache:
                self._misses += 1
                return None

            value, stored_at = self._cache[key]
            if self._is_expired(stored_at, self._clock()):
                del self._cache[key]
                self._misses += 1
                logger.debug("Cache miss due to TTL expiration", cache_key=key)
                return None

            self._cache.move_to_end(key)
            self._hits += 1
            return value

    def put(self, key: K, value: V) -> None:
        """
        Put an item into the cache.

        Args:
            key: The key to store
            value: The value to store
        """
        with self._lock:
            now = self._clock()

            if key in self._cache:
                self._cache[key] = (value, now)
                self._cache.move_to_end(key)
                return

            if len(self._cache) >= self.max_size:
                oldest_key, _ = self._cache.popitem(last=False)
                self._evictions += 1
                logger.debug("Cache eviction", evicted_key=oldest_key, cache_size=len(self._cache))

            self._cache[key] = (value, now)

    def delete(self, key: K) -> bool:
        """Delete an item; returns False if it wasn't cached."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def purge_expired(self) -> int:
        """
        Drop every expired entry.

        Returns:
            Number of entries removed
        """
        if self.ttl_seconds is None:
            return 0
        with self._lock:
            now = self._clock()
            expired = [key for key, (_, stored_at) in self._cache.items() if self._is_expired(stored_at, now)]
            for key in expired:
                del self._cache[key]
            return len(expired)

    def clear(self) -> None:
        """Clear all items from the cache."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def size(self) -> int:
        """Get the current number of items in the cache, expired ones included."""
        with self._lock:
            return len(self._cache)

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary containing cache statistics
        """
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests) if total_requests > 0 else 0.0

            return {
                "size": len(self._cache),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": hit_rate,
                "ttl_seconds": self.ttl_seconds,
            }

    def __len__(self) -> int:
        return self.size()
