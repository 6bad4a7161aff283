"""Redis caching service.

Singleton async Redis client holding TTL'd JSON strings for the admin
reports and trending suggestions, plus a health check. Redis failures are
logged and reported as cache misses so the API keeps working without a cache.
"""

from typing import Optional

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from xpshare.config import settings

logger = structlog.get_logger(__name__)


class CacheService:
    """Async Redis cache with graceful degradation."""

    def __init__(self, redis_url: str):
        """Initialize cache service.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
        """
        self.redis_url = redis_url
        self._redis: Optional[Redis] = None
        self.logger = logger.bind(service="cache_service")

    async def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            self.logger.info("redis_connection_created", url=self.redis_url)

        return self._redis

    async def get(self, key: str) -> Optional[str]:
        """Get a cached value, or None on miss or Redis error."""
        try:
            redis = await self._get_redis()
            value = await redis.get(key)
            self.logger.debug("cache_hit" if value else "cache_miss", key=key)
            return value

        except RedisError as e:
            self.logger.error("cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        """Store a value with a TTL in seconds. Returns False on Redis error."""
        try:
            redis = await self._get_redis()
            await redis.set(key, value, ex=ttl)
            self.logger.debug("cache_set", key=key, ttl=ttl, value_length=len(value))
            return True

        except RedisError as e:
            self.logger.error("cache_set_failed", key=key, error=str(e))
            return False

    async def health_check(self) -> bool:
        """Ping Redis. Returns True if healthy."""
        try:
            redis = await self._get_redis()
            await redis.ping()
            return True

        except Exception as e:
            self.logger.error("redis_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close the Redis connection (application shutdown)."""
        if self._redis:
            await self._redis.close()
            self._redis = None
            self.logger.info("redis_connection_closed")


# Global cache instance
_cache_instance: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    """Get or create the global cache service instance."""
    global _cache_instance

    if _cache_instance is None:
        _cache_instance = CacheService(settings.REDIS_URL)
        logger.info("cache_service_initialized", redis_url=settings.REDIS_URL)

    return _cache_instance


async def get_cache() -> CacheService:
    """FastAPI dependency for cache service."""
    return get_cache_service()


def cache_key_for_trending(prefix: str, limit: int) -> str:
    """Cache key for trending autocomplete suggestions."""
    return f"suggest:trending:{prefix.strip().lower()}:l{limit}"


def cache_key_for_search_report(days: int) -> str:
    """Cache key for the admin search analytics report."""
    return f"analytics:search:d{days}"


def cache_key_for_hotspots(days: int) -> str:
    """Cache key for the admin hotspot report."""
    return f"analytics:hotspots:d{days}"
