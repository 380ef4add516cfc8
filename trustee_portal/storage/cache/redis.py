"""
Trustee Portal - Redis Cache Implementation
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from trustee_portal.core.config import settings
from trustee_portal.core.exceptions import CacheError
from trustee_portal.storage.base import StorageBackend


# DECR keeps the key's TTL; missing or drained keys are left untouched
DECR_IF_POSITIVE = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current > 0 then
    return redis.call('DECR', KEYS[1])
end
return 0
"""


class RedisCache(StorageBackend):
    """Thin Redis wrapper used for shared rate-limit windows."""

    def __init__(self, url: Optional[str] = None):
        self._url = url or settings.REDIS_URL
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Connect to Redis server."""
        if self._client is not None:
            return

        try:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=20,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()
            self.logger.info("Connected to Redis", url=self._url.split("@")[-1])
        except Exception as e:
            self._client = None
            self._pool = None
            raise CacheError(f"Failed to connect to Redis: {e}")

    async def disconnect(self) -> None:
        """Disconnect from Redis server."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        self.logger.info("Disconnected from Redis")

    async def health_check(self) -> dict[str, Any]:
        """Check Redis health."""
        if not self._client:
            return {"status": "disconnected", "latency_ms": 0}

        try:
            start = asyncio.get_running_loop().time()
            await self._client.ping()
            latency = (asyncio.get_running_loop().time() - start) * 1000
            return {"status": "healthy", "latency_ms": round(latency, 2)}
        except Exception as e:
            return {"status": "unhealthy", "error": str(e), "latency_ms": 0}

    def _ensure_connected(self) -> redis.Redis:
        """Ensure client is connected."""
        if self._client is None:
            raise CacheError("Not connected to Redis")
        return self._client

    async def incr_window(self, key: str, window_seconds: int) -> tuple[int, int]:
        """
        Increment a windowed counter.

        The TTL is only set when the key is created, so the window is fixed
        from the first hit. Returns (count, seconds_until_reset).
        """
        client = self._ensure_connected()

        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=window_seconds, nx=True)
                pipe.incr(key)
                pipe.ttl(key)
                _, count, ttl = await pipe.execute()
        except Exception as e:
            raise CacheError(f"Failed to increment: {e}")

        return int(count), max(int(ttl), 0)

    async def decr_window(self, key: str) -> int:
        """
        Decrement a windowed counter that still exists and is above zero.

        Runs as a script so an expiring key is never recreated without a TTL.
        Returns the new count, or 0 when there was nothing to give back.
        """
        client = self._ensure_connected()

        try:
            result = await client.eval(DECR_IF_POSITIVE, 1, key)
        except Exception as e:
            raise CacheError(f"Failed to decrement: {e}")

        return int(result)

    async def get_window(self, key: str) -> Optional[tuple[int, int]]:
        """Current (count, seconds_until_reset) or None if absent."""
        client = self._ensure_connected()

        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.get(key)
                pipe.ttl(key)
                value, ttl = await pipe.execute()
        except Exception as e:
            raise CacheError(f"Failed to read counter: {e}")

        if value is None:
            return None
        return int(value), max(int(ttl), 0)

    async def delete(self, key: str) -> bool:
        """Delete a key from cache."""
        client = self._ensure_connected()

        try:
            result = await client.delete(key)
            return result > 0
        except Exception as e:
            self.logger.warning("Cache delete failed", key=key, error=str(e))
            return False


# Singleton instance
_cache: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get the global cache instance."""
    global _cache
    if _cache is None:
        _cache = RedisCache()
    return _cache


async def init_cache() -> RedisCache:
    """Initialize and connect the cache."""
    cache = get_cache()
    await cache.connect()
    return cache


async def close_cache() -> None:
    """Close the cache connection."""
    global _cache
    if _cache is not None:
        await _cache.disconnect()
        _cache = None
