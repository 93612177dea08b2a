"""
Key-value cache stores with TTL-on-write.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple, Union

import redis.asyncio as redis

from shared.config import BaseConfig
from shared.logging import get_logger


CacheValue = Union[str, bytes]


class CacheStore(ABC):
    """Minimal async cache interface used by the portal components."""

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheValue]:
        """Return the stored value, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: CacheValue, ttl: int) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class RedisCacheStore(CacheStore):
    """Redis-backed store; values come back as raw bytes."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("portal.cache.redis")
        self._redis: Optional[redis.Redis] = None

    def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    async def get(self, key: str) -> Optional[CacheValue]:
        return await self._get_redis().get(key)

    async def set(self, key: str, value: CacheValue, ttl: int) -> None:
        await self._get_redis().setex(key, ttl, value)
        self.logger.debug("Cached value", key=key, ttl=ttl)

    async def delete(self, key: str) -> None:
        await self._get_redis().delete(key)

    async def ping(self) -> bool:
        try:
            return bool(await self._get_redis().ping())
        except Exception as exc:
            self.logger.error("Redis health check failed", error=str(exc))
            return False

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class MemoryCacheStore(CacheStore):
    """In-process store for single-worker deployments and tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[CacheValue, float]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[CacheValue]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: CacheValue, ttl: int) -> None:
        async with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[key] = (value, now + ttl)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    def _sweep(self, now: float) -> None:
        """Drop every expired entry; caller holds the lock."""
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    def __contains__(self, key: Any) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry[1]

    def __len__(self) -> int:
        return len(self._entries)


def create_cache_store(config: BaseConfig) -> CacheStore:
    """Build the store selected by ``cache_backend``."""
    if config.cache_backend == "memory":
        return MemoryCacheStore()
    return RedisCacheStore(config.redis_url)
