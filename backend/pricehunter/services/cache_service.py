"""Redis cache for multi-store search results.

Scraping every storefront for a query is slow, so identical searches are
served from Redis for ``SEARCH_CACHE_TTL_SECONDS``. Redis being down is
never an error for callers: reads become misses and writes are dropped.
"""

import json
from dataclasses import asdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import structlog
from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from pricehunter.config import settings
from pricehunter.scrapers.base import ScrapedProduct
from pricehunter.scrapers.registry import StoreSearchResult

logger = structlog.get_logger(__name__)

SEARCH_KEY_PREFIX = "search"
DECIMAL_FIELDS = ("price", "original_price", "rating")


class CacheService:
    """Async Redis cache with TTL and graceful error handling."""

    def __init__(self, redis_url: str, client: Optional[Redis] = None):
        """Initialize cache service.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
            client: Pre-built client (tests pass a fake here)
        """
        self.redis_url = redis_url
        self._redis: Optional[Redis] = client
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
        """Get a value from cache.

        Returns:
            Cached value as string, or None if not found or on error
        """
        try:
            redis = await self._get_redis()
            value = await redis.get(key)
        except RedisError as e:
            self.logger.warning("cache_get_failed", key=key, error=str(e))
            return None

        self.logger.debug("cache_hit" if value else "cache_miss", key=key)
        return value

    async def set(self, key: str, value: str, ttl: int = 300) -> bool:
        """Set a value with a TTL in seconds. Returns False on error."""
        try:
            redis = await self._get_redis()
            await redis.set(key, value, ex=ttl)
        except RedisError as e:
            self.logger.warning("cache_set_failed", key=key, error=str(e))
            return False

        self.logger.debug("cache_set", key=key, ttl=ttl, value_length=len(value))
        return True

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a pattern (e.g. "search:*").

        Returns:
            Number of keys deleted, 0 on error
        """
        try:
            redis = await self._get_redis()
            keys = [key async for key in redis.scan_iter(match=pattern, count=100)]
            deleted = await redis.delete(*keys) if keys else 0
        except RedisError as e:
            self.logger.warning("cache_pattern_delete_failed", pattern=pattern, error=str(e))
            return 0

        self.logger.info("cache_pattern_delete", pattern=pattern, keys_deleted=deleted)
        return deleted

    async def health_check(self) -> bool:
        try:
            redis = await self._get_redis()
            await redis.ping()
            return True
        except (RedisError, OSError) as e:
            self.logger.warning("redis_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection (application shutdown)."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("redis_connection_closed")

    # ------------------------------------------------------------------
    # Search results
    # ------------------------------------------------------------------

    async def get_search(self, query: str, stores: Iterable[str]) -> Optional[StoreSearchResult]:
        """Cached search outcome, or None on miss, error or unreadable entry."""
        raw = await self.get(cache_key_for_search(query, stores))
        if raw is None:
            return None
        try:
            return deserialize_search(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning("cache_entry_unreadable", query=query, error=str(e))
            return None

    async def set_search(self, result: StoreSearchResult, stores: Iterable[str], ttl: Optional[int] = None) -> bool:
        """Cache a search outcome. Results with store errors are not cached."""
        if result.errors:
            return False
        payload = json.dumps(serialize_search(result))
        return await self.set(
            cache_key_for_search(result.query, stores),
            payload,
            ttl=ttl or settings.SEARCH_CACHE_TTL_SECONDS,
        )

    async def invalidate_search_cache(self) -> int:
        return await self.delete_pattern(f"{SEARCH_KEY_PREFIX}:*")


def cache_key_for_search(query: str, stores: Iterable[str]) -> str:
    """Stable key: normalized query plus the sorted store list."""
    normalized = " ".join(query.lower().split())
    return ":".join([SEARCH_KEY_PREFIX, ",".join(sorted(set(stores))), normalized])


def serialize_search(result: StoreSearchResult) -> Dict[str, Any]:
    def product_dict(product: ScrapedProduct) -> Dict[str, Any]:
        data = asdict(product)
        for key in DECIMAL_FIELDS:
            if data[key] is not None:
                data[key] = str(data[key])
        return data

    return {
        "query": result.query,
        "results": {slug: [product_dict(p) for p in products] for slug, products in result.results.items()},
        "errors": dict(result.errors),
    }


def deserialize_search(data: Dict[str, Any]) -> StoreSearchResult:
    def product(item: Dict[str, Any]) -> ScrapedProduct:
        item = dict(item)
        for key in DECIMAL_FIELDS:
            if item.get(key) is not None:
                item[key] = Decimal(item[key])
        return ScrapedProduct(**item)

    results: Dict[str, List[ScrapedProduct]] = {
        slug: [product(item) for item in items] for slug, items in data["results"].items()
    }
    return StoreSearchResult(query=data["query"], results=results, errors=dict(data.get("errors") or {}))


# Global cache instance
_cache_instance: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    """Get or create the process-wide cache service."""
    global _cache_instance

    if _cache_instance is None:
        _cache_instance = CacheService(settings.REDIS_URL)
        logger.info("cache_service_initialized", redis_url=settings.REDIS_URL)

    return _cache_instance


async def get_cache() -> CacheService:
    """FastAPI dependency for cache service."""
    return get_cache_service()
