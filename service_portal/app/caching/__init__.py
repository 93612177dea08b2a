"""
Portal caching package.

Provides the key-value stores behind the read-through caches of the
portal gateway and the permit proxy. Stores are thin: atomic
get/set/delete per key with TTL on write, no cross-key transactions.
"""

from .cache_store import CacheStore, MemoryCacheStore, RedisCacheStore, create_cache_store

__all__ = ["CacheStore", "MemoryCacheStore", "RedisCacheStore", "create_cache_store"]
