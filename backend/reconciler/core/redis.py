"""Redis connection and JSON cache helpers.

Redis is optional: it only backs the terminology lookup cache when
``LOOKUP_CACHE_BACKEND=redis``. Cache errors are logged and reported as a
miss so a flaky cache never turns into a normalization failure.
"""

import json
import logging
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from reconciler.core.config import settings

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"

# Redis connection instance (lazy initialized)
_redis_client: Redis | None = None


def get_redis() -> Redis:
    """Get or create the Redis connection configured from settings."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_client


def close_redis() -> None:
    """Close the Redis connection if one was opened."""
    global _redis_client
    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


def cache_get(key: str) -> Any | None:
    """Read a JSON value stored under ``cache:<key>``.

    Returns:
        The decoded value, or None on a miss or any cache error.
    """
    try:
        raw = get_redis().get(f"{CACHE_PREFIX}{key}")
    except RedisError as e:
        logger.warning(f"Cache get failed for {key}: {e}")
        return None

    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Discarding undecodable cache entry {key}")
        return None


def cache_set(key: str, value: Any, ttl_seconds: int) -> bool:
    """Store a JSON value under ``cache:<key>`` with an expiry.

    Returns:
        True if the value was written.
    """
    try:
        get_redis().setex(f"{CACHE_PREFIX}{key}", ttl_seconds, json.dumps(value))
        return True
    except RedisError as e:
        logger.warning(f"Cache set failed for {key}: {e}")
        return False


def cache_delete(key: str) -> bool:
    """Remove ``cache:<key>``."""
    try:
        get_redis().delete(f"{CACHE_PREFIX}{key}")
        return True
    except RedisError as e:
        logger.warning(f"Cache delete failed for {key}: {e}")
        return False
