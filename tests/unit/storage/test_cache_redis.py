"""
Tests for trustee_portal/storage/cache/redis.py
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from trustee_portal.core.exceptions import CacheError


def make_pipeline(results):
    """Mock pipeline usable as ``async with client.pipeline(...) as pipe``."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=results)
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=pipe)
    context.__aexit__ = AsyncMock(return_value=False)
    return context, pipe


class TestRedisCache:
    """Tests for the RedisCache class."""

    @pytest.fixture
    def mock_redis_client(self):
        """Create a mock Redis client."""
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def mock_connection_pool(self):
        pool = MagicMock()
        pool.disconnect = AsyncMock()
        return pool

    def test_redis_cache_initialization(self):
        """Test RedisCache can be initialized."""
        from trustee_portal.storage.cache.redis import RedisCache

        cache = RedisCache(url="redis://localhost:6379/0")
        assert cache._url == "redis://localhost:6379/0"
        assert not cache.is_connected

    @pytest.mark.asyncio
    async def test_redis_cache_connect(self, mock_redis_client, mock_connection_pool):
        """Test RedisCache connect and disconnect."""
        from trustee_portal.storage.cache.redis import RedisCache

        with patch("trustee_portal.storage.cache.redis.ConnectionPool.from_url", return_value=mock_connection_pool):
            with patch("trustee_portal.storage.cache.redis.redis.Redis", return_value=mock_redis_client):
                cache = RedisCache(url="redis://localhost:6379/0")
                await cache.connect()
                assert cache.is_connected
                mock_redis_client.ping.assert_awaited()

                await cache.disconnect()
                assert not cache.is_connected
                mock_connection_pool.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_redis_cache_connect_failure(self, mock_redis_client, mock_connection_pool):
        """A failed ping surfaces as CacheError and leaves the cache disconnected."""
        from trustee_portal.storage.cache.redis import RedisCache

        mock_redis_client.ping = AsyncMock(side_effect=ConnectionError("refused"))
        with patch("trustee_portal.storage.cache.redis.ConnectionPool.from_url", return_value=mock_connection_pool):
            with patch("trustee_portal.storage.cache.redis.redis.Redis", return_value=mock_redis_client):
                cache = RedisCache(url="redis://localhost:6379/0")
                with pytest.raises(CacheError):
                    await cache.connect()
                assert not cache.is_connected

    @pytest.mark.asyncio
    async def test_incr_window(self, mock_redis_client):
        """The TTL is set with NX so only the first hit opens the window."""
        from trustee_portal.storage.cache.redis import RedisCache

        context, pipe = make_pipeline([True, 3, 42])
        mock_redis_client.pipeline = MagicMock(return_value=context)

        cache = RedisCache(url="redis://localhost:6379/0")
        cache._client = mock_redis_client

        assert await cache.incr_window("ratelimit:ip", 60) == (3, 42)
        mock_redis_client.pipeline.assert_called_once_with(transaction=True)
        pipe.set.assert_called_once_with("ratelimit:ip", 0, ex=60, nx=True)
        pipe.incr.assert_called_once_with("ratelimit:ip")

    @pytest.mark.asyncio
    async def test_incr_window_negative_ttl(self, mock_redis_client):
        from trustee_portal.storage.cache.redis import RedisCache

        context, _ = make_pipeline([None, 1, -1])
        mock_redis_client.pipeline = MagicMock(return_value=context)

        cache = RedisCache(url="redis://localhost:6379/0")
        cache._client = mock_redis_client

        assert await cache.incr_window("k", 60) == (1, 0)

    @pytest.mark.asyncio
    async def test_incr_window_failure(self, mock_redis_client):
        from trustee_portal.storage.cache.redis import RedisCache

        context, pipe = make_pipeline(None)
        pipe.execute = AsyncMock(side_effect=TimeoutError("slow"))
        mock_redis_client.pipeline = MagicMock(return_value=context)

        cache = RedisCache(url="redis://localhost:6379/0")
        cache._client = mock_redis_client

        with pytest.raises(CacheError):
            await cache.incr_window("k", 60)

    @pytest.mark.asyncio
    async def test_decr_window(self, mock_redis_client):
        """Decrements go through a script so an expired key is never recreated."""
        from trustee_portal.storage.cache.redis import DECR_IF_POSITIVE, RedisCache

        mock_redis_client.eval = AsyncMock(return_value=1)
        cache = RedisCache(url="redis://localhost:6379/0")
        cache._client = mock_redis_client

        assert await cache.decr_window("ratelimit:auth:ip") == 1
        mock_redis_client.eval.assert_awaited_once_with(DECR_IF_POSITIVE, 1, "ratelimit:auth:ip")

    @pytest.mark.asyncio
    async def test_decr_window_failure(self, mock_redis_client):
        from trustee_portal.storage.cache.redis import RedisCache

        mock_redis_client.eval = AsyncMock(side_effect=ConnectionError("gone"))
        cache = RedisCache(url="redis://localhost:6379/0")
        cache._client = mock_redis_client

        with pytest.raises(CacheError):
            await cache.decr_window("k")

    @pytest.mark.asyncio
    async def test_get_window(self, mock_redis_client):
        from trustee_portal.storage.cache.redis import RedisCache

        cache = RedisCache(url="redis://localhost:6379/0")
        cache._client = mock_redis_client

        context, _ = make_pipeline(["7", 30])
        mock_redis_client.pipeline = MagicMock(return_value=context)
        assert await cache.get_window("k") == (7, 30)

        context, _ = make_pipeline([None, -2])
        mock_redis_client.pipeline = MagicMock(return_value=context)
        assert await cache.get_window("k") is None

    @pytest.mark.asyncio
    async def test_delete(self, mock_redis_client):
        from trustee_portal.storage.cache.redis import RedisCache

        cache = RedisCache(url="redis://localhost:6379/0")
        cache._client = mock_redis_client
        assert await cache.delete("k") is True

        mock_redis_client.delete = AsyncMock(side_effect=ConnectionError("gone"))
        assert await cache.delete("k") is False

    @pytest.mark.asyncio
    async def test_not_connected(self):
        from trustee_portal.storage.cache.redis import RedisCache

        cache = RedisCache(url="redis://localhost:6379/0")
        with pytest.raises(CacheError):
            await cache.incr_window("k", 60)

    @pytest.mark.asyncio
    async def test_health_check(self, mock_redis_client):
        from trustee_portal.storage.cache.redis import RedisCache

        cache = RedisCache(url="redis://localhost:6379/0")
        assert (await cache.health_check())["status"] == "disconnected"

        cache._client = mock_redis_client
        assert (await cache.health_check())["status"] == "healthy"

        mock_redis_client.ping = AsyncMock(side_effect=ConnectionError("down"))
        assert (await cache.health_check())["status"] == "unhealthy"
