"""Cache client abstraction with Redis and in-memory backends.

The webhook service uses the cache for short-lived coordination keys,
chiefly the per-job locks that keep cron sweeps single-flight across
instances.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from webhook_service.config.settings import CacheConfig


class CacheClient:
    """Cache facade that delegates to a Redis or in-memory LRU backend."""

    def __init__(self, config: CacheConfig) -> None:
        self._config = config
        self._backend: CacheBackend | None = None
        self._connected = False

    async def connect(self) -> None:
        """Connect to the configured backend.

        Raises:
            ValueError: If the cache engine is not supported.
        """
        from webhook_service.cache.memory import MemoryCache
        from webhook_service.cache.redis import RedisCache

        engine = str(self._config.engine).lower()

        if engine == "redis":
            self._backend = RedisCache(self._config)
        elif engine == "memory":
            self._backend = MemoryCache(self._config)
        else:
            msg = f"Unsupported cache engine: {engine}"
            raise ValueError(msg)

        await self._backend.connect()
        self._connected = True

    async def close(self) -> None:
        """Close the cache connection (idempotent)."""
        if self._backend is not None:
            await self._backend.close()
            self._backend = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._backend is not None

    async def get(self, key: str) -> str | None:
        return await self._require().get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        await self._require().set(key, value, ttl=ttl)

    async def set_nx(self, key: str, value: str, ttl: int) -> bool:
        """Set *key* only if it is absent.

        Args:
            key: Cache key.
            value: Value to store.
            ttl: Expiry in seconds; the key frees itself if the holder dies.

        Returns:
            True if this call created the key.
        """
        return await self._require().set_nx(key, value, ttl)

    async def delete(self, key: str) -> None:
        await self._require().delete(key)

    async def exists(self, key: str) -> bool:
        return await self._require().exists(key)

    async def flush(self) -> None:
        """Flush all keys (development/testing only)."""
        await self._require().flush()

    def _require(self) -> CacheBackend:
        if not self._connected or self._backend is None:
            msg = "Cache not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._backend


class CacheBackend(Protocol):
    """Protocol for cache backend implementations."""

    async def connect(self) -> None: ...
    async def close(self) -> None: ...
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...
    async def set_nx(self, key: str, value: str, ttl: int) -> bool: ...
    async def delete(self, key: str) -> None: ...
    async def exists(self, key: str) -> bool: ...
    async def flush(self) -> None: ...
