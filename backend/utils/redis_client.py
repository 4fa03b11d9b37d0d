# backend/utils/redis_client.py
"""
Redis cache with full graceful fallback.
If Redis is not running, every operation is a no-op (reads return None), so
Echo Score previews and leaderboards are simply computed fresh each time.
"""

import json
import logging
from typing import Optional, Any

import redis.asyncio as aioredis

from core.config import settings

logger = logging.getLogger("redis_client")

_redis: Optional[aioredis.Redis] = None
_redis_available: bool = True   # Flips to False after the first failed connection


async def get_redis() -> Optional[aioredis.Redis]:
    """
    Returns a Redis client, or None if Redis is unavailable.
    After a connection failure, reconnects are not attempted again for the
    lifetime of the process.
    """
    global _redis, _redis_available

    if not _redis_available:
        return None

    try:
        if _redis is None:
            _redis = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=2,
            )
        await _redis.ping()
        return _redis
    except (aioredis.RedisError, OSError) as e:
        _redis_available = False
        _redis = None
        logger.warning(f"[Redis] Not available ({e}). Caching disabled until restart.")
        return None


async def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> None:
    """Serialize value to JSON and store with TTL (seconds)."""
    r = await get_redis()
    if r is None:
        return
    try:
        await r.setex(key, ttl or settings.CACHE_TTL_SECONDS, json.dumps(value, default=str))
    except aioredis.RedisError as e:
        logger.debug(f"[Redis] set {key} failed: {e}")


async def cache_get(key: str) -> Optional[Any]:
    """Return the deserialized value, or None on a miss or when Redis is down."""
    r = await get_redis()
    if r is None:
        return None
    try:
        raw = await r.get(key)
    except aioredis.RedisError as e:
        logger.debug(f"[Redis] get {key} failed: {e}")
        return None
    return json.loads(raw) if raw else None


async def cache_delete(key: str) -> None:
    r = await get_redis()
    if r is None:
        return
    try:
        await r.delete(key)
    except aioredis.RedisError as e:
        logger.debug(f"[Redis] delete {key} failed: {e}")
