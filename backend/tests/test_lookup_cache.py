"""Tests for the terminology lookup cache."""

import json
import threading
from unittest.mock import MagicMock, patch

from redis.exceptions import RedisError

from reconciler.core.config import settings
from reconciler.services.lookup_cache import (
    MemoryLookupCache,
    RedisLookupCache,
    create_lookup_cache,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestMemoryLookupCache:
    """Test the in-process cache."""

    def test_get_after_set(self):
        """Test that a stored value is returned."""
        cache = MemoryLookupCache(ttl_seconds=60)
        cache.set("loinc:1", {"name": "X"})
        assert cache.get("loinc:1") == {"name": "X"}

    def test_miss(self):
        """Test that an unknown key is a miss."""
        assert MemoryLookupCache(ttl_seconds=60).get("nope") is None

    def test_entry_expires(self):
        """Test that entries expire after the TTL."""
        clock = FakeClock()
        cache = MemoryLookupCache(ttl_seconds=60, clock=clock)
        cache.set("k", {"name": "X"})

        clock.now = 59.0
        assert cache.get("k") == {"name": "X"}

        clock.now = 60.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_set_refreshes_expiry(self):
        """Test that re-setting a key restarts its TTL."""
        clock = FakeClock()
        cache = MemoryLookupCache(ttl_seconds=10, clock=clock)
        cache.set("k", {"name": "old"})
        clock.now = 8.0
        cache.set("k", {"name": "new"})
        clock.now = 15.0
        assert cache.get("k") == {"name": "new"}

    def test_clear(self):
        """Test that clear drops every entry."""
        cache = MemoryLookupCache(ttl_seconds=60)
        cache.set("a", {})
        cache.set("b", {})
        cache.clear()
        assert len(cache) == 0

    async def test_async_access(self):
        """Test that the async accessors read and write the same entries."""
        cache = MemoryLookupCache(ttl_seconds=60)

        await cache.aset("k", {"name": "X"})

        assert await cache.aget("k") == {"name": "X"}


class TestRedisLookupCache:
    """Test the Redis-backed cache."""

    @patch("reconciler.core.redis.get_redis")
    def test_get_decodes_json(self, mock_get_redis: MagicMock):
        """Test that values are read from the namespaced key."""
        client = MagicMock()
        client.get.return_value = json.dumps({"name": "X", "category": "chemistry"})
        mock_get_redis.return_value = client

        value = RedisLookupCache(ttl_seconds=60).get("loinc:1-1")

        assert value == {"name": "X", "category": "chemistry"}
        client.get.assert_called_once_with("cache:lookup:loinc:1-1")

    @patch("reconciler.core.redis.get_redis")
    def test_set_uses_ttl(self, mock_get_redis: MagicMock):
        """Test that values are written with an expiry."""
        client = MagicMock()
        mock_get_redis.return_value = client

        RedisLookupCache(ttl_seconds=300).set("rxnorm:1", {"name": "Drug"})

        client.setex.assert_called_once_with("cache:lookup:rxnorm:1", 300, json.dumps({"name": "Drug"}))

    @patch("reconciler.core.redis.get_redis")
    def test_redis_error_is_a_miss(self, mock_get_redis: MagicMock):
        """Test that Redis errors degrade to a cache miss."""
        client = MagicMock()
        client.get.side_effect = RedisError("connection refused")
        mock_get_redis.return_value = client

        assert RedisLookupCache(ttl_seconds=60).get("loinc:1") is None

    @patch("reconciler.core.redis.get_redis")
    def test_non_dict_value_ignored(self, mock_get_redis: MagicMock):
        """Test that unexpected stored shapes are treated as a miss."""
        client = MagicMock()
        client.get.return_value = json.dumps(["not", "a", "dict"])
        mock_get_redis.return_value = client

        assert RedisLookupCache(ttl_seconds=60).get("k") is None

    @patch("reconciler.core.redis.get_redis")
    def test_clear_deletes_written_keys(self, mock_get_redis: MagicMock):
        """Test that clear removes keys this cache wrote."""
        client = MagicMock()
        mock_get_redis.return_value = client
        cache = RedisLookupCache(ttl_seconds=60)
        cache.set("a", {"name": "A"})

        cache.clear()

        client.delete.assert_called_once_with("cache:lookup:a")


    @patch("reconciler.core.redis.get_redis")
    async def test_async_access_runs_off_the_event_loop(self, mock_get_redis: MagicMock):
        """Test that coroutine reads and writes call redis-py from a worker thread."""
        loop_thread = threading.get_ident()
        calls: list[int] = []
        client = MagicMock()
        client.get.side_effect = lambda key: calls.append(threading.get_ident()) or json.dumps({"name": "X"})
        client.setex.side_effect = lambda *args: calls.append(threading.get_ident())
        mock_get_redis.return_value = client
        cache = RedisLookupCache(ttl_seconds=60)

        await cache.aset("loinc:1", {"name": "X"})
        value = await cache.aget("loinc:1")

        assert value == {"name": "X"}
        assert len(calls) == 2
        assert loop_thread not in calls


class TestCreateLookupCache:
    """Test cache backend selection."""

    def test_default_is_memory(self):
        """Test the default backend and TTL."""
        cache = create_lookup_cache()
        assert isinstance(cache, MemoryLookupCache)
        assert cache.ttl_seconds == settings.lookup_cache_ttl_seconds

    def test_redis_backend(self):
        """Test selecting Redis explicitly."""
        cache = create_lookup_cache("redis", ttl_seconds=5)
        assert isinstance(cache, RedisLookupCache)
        assert cache.ttl_seconds == 5
