"""
Caching module for the realtime hub.

Provides the TTL-bounded LRU cache used for short-lived diagnostic records.
"""

from .lru_cache import LRUCache

__all__ = ["LRUCache"]
