"""Tests for the CacheClient facade and the Redis backend."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from webhook_service.cache.client import CacheClient
from webhook_service.cache.memory import MemoryCache
from webhook_service.cache.redis import RedisCache
from webhook_service.config.settings import CacheConfig, CacheEngine


class TestCacheClient:
    async def test_connect_memory_backend(self) -> None:
        client = CacheClient(CacheConfig(engine=CacheEngine.MEMORY))
        assert not client.is_connected
        await client.connect()
        assert client.is_connected
        assert isinstance(client._backend, MemoryCache)
        await client.close()
        assert not client.is_connected

    async def test_close_idempotent(self) -> None:
        client = CacheClient(CacheConfig(engine=CacheEngine.MEMORY))
        await client.connect()
        await client.close()
        await client.close()

    async def test_operations_delegate(self) -> None:
        client = CacheClient(CacheConfig(engine=CacheEngine.MEMORY))
        await client.connect()

        await client.set("k", "v")
        assert await client.get("k") == "v"
        assert await client.exists("k")
        assert not await client.set_nx("k", "other", ttl=30)
        await client.delete("k")
        assert await client.set_nx("k", "other", ttl=30)
        await client.flush()
        assert await client.get("k") is None
        await client.close()

    async def test_not_connected_raises(self) -> None:
        client = CacheClient(CacheConfig(engine=CacheEngine.MEMORY))
        with pytest.raises(RuntimeError, match="not connected"):
            await client.get("k")


class TestRedisCache:
    """RedisCache against a mocked client."""

    @pytest.fixture
    def redis_cache(self) -> tuple[RedisCache, AsyncMock]:
        cache = RedisCache(CacheConfig(engine=CacheEngine.REDIS))
        mock = AsyncMock()
        cache._redis = mock
        return cache, mock

    async def test_set_nx_uses_nx_and_ex(self, redis_cache) -> None:
        cache, mock = redis_cache
        mock.set.return_value = True
        assert await cache.set_nx("webhooks:cron:retry_sweep", "me", 120)
        mock.set.assert_awaited_once_with("webhooks:cron:retry_sweep", "me", nx=True, ex=120)

    async def test_set_nx_held(self, redis_cache) -> None:
        cache, mock = redis_cache
        mock.set.return_value = None
        assert not await cache.set_nx("lock", "me", 120)

    async def test_connect_failure(self, monkeypatch) -> None:
        fake = AsyncMock()
        fake.ping.side_effect = OSError("refused")
        monkeypatch.setattr(
            "webhook_service.cache.redis.Redis.from_url", lambda *a, **kw: fake
        )
        cache = RedisCache(CacheConfig(engine=CacheEngine.REDIS))
        with pytest.raises(ConnectionError, match="Failed to connect"):
            await cache.connect()
