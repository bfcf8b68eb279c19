"""In-memory LRU cache for single-instance deployments and tests."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from webhook_service.config.settings import CacheConfig


class MemoryCache:
    """Process-local LRU cache with per-key expiry."""

    def __init__(self, config: CacheConfig, max_size: int = 10000) -> None:
        self._config = config
        self._max_size = max_size
        # key -> (value, expiry timestamp or None)
        self._cache: OrderedDict[str, tuple[str, float | None]] = OrderedDict()

    async def connect(self) -> None:  # noqa: ASYNC910
        """No-op for the in-memory backend."""

    async def close(self) -> None:  # noqa: ASYNC910
        self._cache.clear()

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        _, expiry = entry
        if expiry is not None and time.time() > expiry:
            del self._cache[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:  # noqa: ASYNC910
        entry = self._live(key)
        if entry is None:
            return None
        self._cache.move_to_end(key)
        return entry[0]

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:  # noqa: ASYNC910
        expiry = None if ttl is None else time.time() + ttl
        self._cache.pop(key, None)
        self._cache[key] = (value, expiry)
        if len(self._cache) > self._max_size:
            self._cache.popitem(last=False)

    async def set_nx(self, key: str, value: str, ttl: int) -> bool:
        """Create *key* unless a live entry already holds it."""
        if self._live(key) is not None:
            return False
        await self.set(key, value, ttl=ttl)
        return True

    async def delete(self, key: str) -> None:  # noqa: ASYNC910
        self._cache.pop(key, None)

    async def exists(self, key: str) -> bool:  # noqa: ASYNC910
        return self._live(key) is not None

    async def flush(self) -> None:  # noqa: ASYNC910
        self._cache.clear()
