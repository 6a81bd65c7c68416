"""
Redis cache for event details, seat availability and check-in statistics.

The cache is optional: when Redis cannot be reached at startup every
operation becomes a miss and the services read from the database.
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from .config import get_settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "evently"


class CacheKeyBuilder:
    """Cache keys, one namespace per cached read model."""

    @staticmethod
    def event_detail(event_id: str) -> str:
        return f"{KEY_PREFIX}:event:{event_id}"

    @staticmethod
    def seat_availability(event_id: str) -> str:
        return f"{KEY_PREFIX}:seats:{event_id}"

    @staticmethod
    def verification_stats(event_id: str) -> str:
        return f"{KEY_PREFIX}:checkin-stats:{event_id}"


class CacheTTL:
    """Expiry per read model, in seconds."""

    EVENT_DETAIL = 600
    SEAT_AVAILABILITY = 60
    # Door dashboards poll; stale counts must not outlive a few scans
    VERIFICATION_STATS = 15


class RedisCache:
    """JSON values in Redis behind a shared connection pool."""

    def __init__(self):
        self.client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        """Connect to Redis; on failure the cache stays disabled."""
        settings = get_settings()
        client = redis.Redis.from_url(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            logger.warning(f"Redis unavailable at startup, caching disabled: {e}")
            await client.aclose()
            return

        self.client = client
        logger.info("Redis cache connected")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
            logger.info("Redis cache closed")

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on a miss or any Redis error."""
        if not self.enabled:
            return None

        try:
            raw = await self.client.get(key)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache entry {key}")
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False

        try:
            await self.client.set(key, json.dumps(value, default=str), ex=ttl)
        except (RedisError, TypeError) as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False
        return True

    async def delete(self, *keys: str) -> int:
        """Remove keys; returns how many existed."""
        if not self.enabled or not keys:
            return 0

        try:
            return await self.client.delete(*keys)
        except RedisError as e:
            logger.warning(f"Cache delete failed for {', '.join(keys)}: {e}")
            return 0

    async def ping(self) -> bool:
        if not self.enabled:
            return False
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False


cache = RedisCache()


async def init_cache() -> None:
    await cache.initialize()


async def close_cache() -> None:
    await cache.close()


def get_cache() -> RedisCache:
    return cache


class CacheInvalidator:
    """Drops read models after the writes that change them."""

    @staticmethod
    async def invalidate_event_caches(event_id: str) -> None:
        """Capacity, seats and check-in figures all change with a booking."""
        await cache.delete(
            CacheKeyBuilder.event_detail(event_id),
            CacheKeyBuilder.seat_availability(event_id),
            CacheKeyBuilder.verification_stats(event_id),
        )
        logger.debug(f"Invalidated caches for event {event_id}")

    @staticmethod
    async def invalidate_seat_caches(event_id: str) -> None:
        await cache.delete(CacheKeyBuilder.seat_availability(event_id))

    @staticmethod
    async def invalidate_verification_caches(event_id: str) -> None:
        await cache.delete(CacheKeyBuilder.verification_stats(event_id))
