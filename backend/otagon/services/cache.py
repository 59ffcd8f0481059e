"""
Cache clients for conversation snapshots.

``RedisClient`` is used when ``REDIS_URL`` is configured; otherwise
``MemoryCache`` keeps the same async interface in-process.
"""
import fnmatch
import json
import time
from typing import Any, Callable, Optional, Tuple, Union

from cachetools import TTLCache
import redis.asyncio as redis

from ..config import settings


class RedisClient:
    """Async Redis client wrapper."""

    def __init__(self, url: Optional[str] = None):
        """Initialize the Redis client."""
        self._url = url or settings.REDIS_URL
        self._redis: Optional[redis.Redis] = None

    async def connect(self):
        """Establish connection to Redis."""
        if self._redis is None:
            self._redis = redis.from_url(
                self._url,
                encoding="utf-8",
                decode_responses=True
            )
        return self._redis

    async def close(self):
        """Close the Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get_client(self) -> redis.Redis:
        """Get the Redis client, connecting if needed."""
        if self._redis is None:
            await self.connect()
        return self._redis

    async def cache_get(self, key: str) -> Optional[Any]:
        """Get cached value."""
        client = await self.get_client()
        data = await client.get(f"cache:{key}")
        if data:
            return json.loads(data)
        return None

    async def cache_set(
        self,
        key: str,
        value: Any,
        expire_seconds: Optional[int] = None
    ):
        """Set cached value."""
        client = await self.get_client()
        await client.setex(
            f"cache:{key}",
            expire_seconds or settings.CACHE_TTL_SECONDS,
            json.dumps(value, default=str)
        )

    async def cache_delete(self, key: str):
        """Delete cached value."""
        client = await self.get_client()
        await client.delete(f"cache:{key}")

    async def cache_clear_pattern(self, pattern: str):
        """Clear all cache keys matching pattern."""
        client = await self.get_client()
        keys = [key async for key in client.scan_iter(match=f"cache:{pattern}")]
        if keys:
            await client.delete(*keys)

    async def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            client = await self.get_client()
            await client.ping()
            return True
        except Exception:
            return False


class MemoryCache:
    """
    In-process cache with the RedisClient caching interface.

    Backed by a bounded ``TTLCache``: entries expire after ``default_ttl``
    seconds and the least recently used entry is evicted once ``maxsize`` is
    reached. A per-call ``expire_seconds`` can shorten an entry's lifetime
    but not extend it past ``default_ttl``.
    """

    def __init__(
        self,
        default_ttl: Optional[int] = None,
        maxsize: Optional[int] = None,
        timer: Callable[[], float] = time.monotonic
    ):
        self._default_ttl = default_ttl or settings.CACHE_TTL_SECONDS
        self._entries: TTLCache = TTLCache(
            maxsize=maxsize or settings.CACHE_MAX_ENTRIES,
            ttl=self._default_ttl,
            timer=timer
        )

    async def connect(self):
        return self

    async def close(self):
        self._entries.clear()

    async def cache_get(self, key: str) -> Optional[Any]:
        entry: Optional[Tuple[float, str]] = self._entries.get(key)
        if entry is None:
            return None
        expires_at, data = entry
        if expires_at <= self._entries.timer():
            self._entries.pop(key, None)
            return None
        return json.loads(data)

    async def cache_set(self, key: str, value: Any, expire_seconds: Optional[int] = None):
        ttl = min(expire_seconds or self._default_ttl, self._default_ttl)
        # Stored serialised so callers never share mutable state with the cache
        self._entries[key] = (self._entries.timer() + ttl, json.dumps(value, default=str))

    async def cache_delete(self, key: str):
        self._entries.pop(key, None)

    async def cache_clear_pattern(self, pattern: str):
        for key in [k for k in list(self._entries.keys()) if fnmatch.fnmatchcase(k, pattern)]:
            self._entries.pop(key, None)

    async def ping(self) -> bool:
        return True


CacheClient = Union[RedisClient, MemoryCache]


def create_cache() -> CacheClient:
    """Build the cache backend selected by settings."""
    if settings.REDIS_URL:
        return RedisClient(settings.REDIS_URL)
    return MemoryCache()


# Global instance
cache_client: CacheClient = create_cache()
