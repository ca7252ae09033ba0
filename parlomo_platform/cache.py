"""
Redis caching layer for public listings and ticketing views.

Every read path works without Redis: a missing or failing cache behaves as
a permanent miss and writes are dropped.
"""

import json
import logging
from typing import Any, List, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .config import get_settings

logger = logging.getLogger(__name__)

NAMESPACE = "parlomo"


class CacheKeyBuilder:
    """Cache keys, all under the ``parlomo:`` namespace."""

    @staticmethod
    def event_list(filters_hash: str, page: int, limit: int) -> str:
        return f"{NAMESPACE}:events:list:{filters_hash}:{page}:{limit}"

    @staticmethod
    def event_list_pattern() -> str:
        return f"{NAMESPACE}:events:list:*"

    @staticmethod
    def event_detail(event_id: str) -> str:
        return f"{NAMESPACE}:event:{event_id}"

    @staticmethod
    def event_slug(slug: str) -> str:
        return f"{NAMESPACE}:event:slug:{slug.lower()}"

    @staticmethod
    def event_stats() -> str:
        """Admin overview of events by status and category."""
        return f"{NAMESPACE}:events:overview"

    @staticmethod
    def active_categories() -> str:
        return f"{NAMESPACE}:categories:active"

    @staticmethod
    def category_stats() -> str:
        return f"{NAMESPACE}:categories:stats"

    @staticmethod
    def ticketing_view(event_id: str) -> str:
        """Ticket types, availability and currency shown on the event page."""
        return f"{NAMESPACE}:ticketing:{event_id}"

    @staticmethod
    def seat_availability(event_id: str) -> str:
        return f"{NAMESPACE}:seats:{event_id}"


class RedisCache:
    """JSON values in Redis; failures are logged and treated as misses."""

    def __init__(self):
        self.client: Optional[Redis] = None
        self.pool: Optional[redis.ConnectionPool] = None

    @property
    def is_available(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        """Connect to Redis; leaves the cache offline when the server is unreachable."""
        settings = get_settings()
        self.pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            retry_on_timeout=True,
            socket_keepalive=True,
            health_check_interval=30,
        )
        client = Redis(connection_pool=self.pool)
        try:
            await client.ping()
        except RedisError as e:
            logger.warning(f"Redis unavailable, caching disabled: {e}")
            await self.pool.disconnect()
            self.pool = None
            return

        self.client = client
        logger.info("Redis cache connected")

    async def close(self) -> None:
        if self.client:
            await self.client.close()
        if self.pool:
            await self.pool.disconnect()
        self.client = None
        self.pool = None

    async def get(self, key: str) -> Optional[Any]:
        if not self.client:
            return None
        try:
            raw = await self.client.get(key)
            return json.loads(raw) if raw else None
        except (RedisError, ValueError) as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Store a JSON-serialisable value.

        UUIDs and datetimes are stored as strings.
        """
        if not self.client:
            return False
        try:
            await self.client.set(key, json.dumps(value, default=str), ex=ttl)
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

    async def delete(self, *keys: str) -> bool:
        if not self.client or not keys:
            return False
        try:
            await self.client.delete(*keys)
            return True
        except RedisError as e:
            logger.warning(f"Cache delete failed for {', '.join(keys)}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching ``pattern``; returns how many were removed."""
        if not self.client:
            return 0
        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            if keys:
                await self.client.delete(*keys)
            return len(keys)
        except RedisError as e:
            logger.warning(f"Cache delete failed for pattern {pattern}: {e}")
            return 0

    # Sorted-set helpers for the sliding-window rate limiter

    async def zcard(self, key: str) -> int:
        if not self.client:
            return 0
        try:
            return await self.client.zcard(key)
        except RedisError as e:
            logger.warning(f"zcard failed for {key}: {e}")
            return 0

    async def zrange(self, key: str, start: int, end: int, withscores: bool = False) -> List:
        if not self.client:
            return []
        try:
            return await self.client.zrange(key, start, end, withscores=withscores)
        except RedisError as e:
            logger.warning(f"zrange failed for {key}: {e}")
            return []

    def pipeline(self):
        """Pipeline for batched sliding-window updates, or None when offline."""
        return self.client.pipeline() if self.client else None


cache = RedisCache()


async def init_cache() -> None:
    await cache.initialize()


async def close_cache() -> None:
    await cache.close()


def get_cache() -> RedisCache:
    return cache


class CacheInvalidator:
    """Drops cached views when the data behind them changes."""

    @staticmethod
    async def invalidate_event_caches(event_id: str, slug: Optional[str] = None) -> None:
        """An event changed: its detail, slug lookup, ticketing view and every listing."""
        keys = [CacheKeyBuilder.event_detail(event_id), CacheKeyBuilder.ticketing_view(event_id)]
        if slug:
            keys.append(CacheKeyBuilder.event_slug(slug))
        await cache.delete(*keys)
        await CacheInvalidator.invalidate_event_list_caches()
        logger.debug(f"Invalidated caches for event {event_id}")

    @staticmethod
    async def invalidate_event_list_caches() -> None:
        await cache.delete_pattern(CacheKeyBuilder.event_list_pattern())
        await cache.delete(CacheKeyBuilder.event_stats())

    @staticmethod
    async def invalidate_ticketing_caches(event_id: str) -> None:
        """Ticket counts changed: drop the ticketing view and seat availability."""
        await cache.delete(CacheKeyBuilder.ticketing_view(event_id), CacheKeyBuilder.seat_availability(event_id))

    @staticmethod
    async def invalidate_category_caches() -> None:
        await cache.delete(CacheKeyBuilder.active_categories(), CacheKeyBuilder.category_stats())


class CacheTTL:
    """Cache lifetimes in seconds."""

    EVENT_LIST = 300
    EVENT_DETAIL = 600
    EVENT_STATS = 300
    CATEGORIES = 3600
    TICKETING_VIEW = 30
    SEAT_AVAILABILITY = 30
