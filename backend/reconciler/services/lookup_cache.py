"""TTL cache for terminology lookup results.

Two backends are available: an in-process dict (default) and Redis, selected
by ``LOOKUP_CACHE_BACKEND``. Cached values are plain JSON-ready dicts.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any

from reconciler.core import redis as redis_cache
from reconciler.core.config import settings

logger = logging.getLogger(__name__)


class LookupCache(ABC):
    """Key/value cache with per-entry expiry."""

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the cached value, or None if absent or expired."""

    @abstractmethod
    def set(self, key: str, value: dict[str, Any]) -> None:
        """Store a value for ``ttl_seconds``."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every entry this cache can reach."""

    async def aget(self, key: str) -> dict[str, Any] | None:
        """``get`` for use inside coroutines."""
        return self.get(key)

    async def aset(self, key: str, value: dict[str, Any]) -> None:
        """``set`` for use inside coroutines."""
        self.set(key, value)


class MemoryLookupCache(LookupCache):
    """In-process cache; entries expire ``ttl_seconds`` after being stored."""

    def __init__(self, ttl_seconds: int, clock=time.monotonic):
        super().__init__(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, tuple[float, dict[str, Any]]] = {}
        self._lock = Lock()

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisLookupCache(LookupCache):
    """Cache shared across processes through Redis.

    Keys are namespaced ``cache:lookup:<key>``. Redis errors degrade to a
    cache miss. The async accessors run the blocking redis-py calls in the
    default executor so concurrent lookups keep the event loop free.
    """

    prefix = "lookup:"

    def __init__(self, ttl_seconds: int):
        super().__init__(ttl_seconds)
        self._keys: set[str] = set()

    def get(self, key: str) -> dict[str, Any] | None:
        value = redis_cache.cache_get(f"{self.prefix}{key}")
        return value if isinstance(value, dict) else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        if redis_cache.cache_set(f"{self.prefix}{key}", value, self.ttl_seconds):
            self._keys.add(key)

    async def aget(self, key: str) -> dict[str, Any] | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get, key)

    async def aset(self, key: str, value: dict[str, Any]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.set, key, value)

    def clear(self) -> None:
        # Only keys written by this instance; other processes' entries expire by TTL.
        for key in list(self._keys):
            redis_cache.cache_delete(f"{self.prefix}{key}")
        self._keys.clear()


def create_lookup_cache(
    backend: str | None = None,
    ttl_seconds: int | None = None,
) -> LookupCache:
    """Build the configured lookup cache.

    Args:
        backend: "memory" or "redis"; defaults to settings.
        ttl_seconds: Entry lifetime; defaults to settings.
    """
    backend = backend or settings.lookup_cache_backend
    ttl = ttl_seconds if ttl_seconds is not None else settings.lookup_cache_ttl_seconds

    if backend == "redis":
        logger.info(f"Using Redis lookup cache (ttl={ttl}s)")
        return RedisLookupCache(ttl)
    return MemoryLookupCache(ttl)
