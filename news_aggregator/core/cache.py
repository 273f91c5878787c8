"""
Key/value cache with per-entry TTL.

Used for provider response caching and for the per-source rate limit
counters. The in-process implementation is enough for a single worker
process; anything implementing the Cache protocol can replace it.
"""
import asyncio
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional, Protocol


class Cache(Protocol):
    """Interface consumed by source adapters and the rate limiter."""

    async def get(self, key: str, default: Any = None) -> Any: ...

    async def put(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    async def forget(self, key: str) -> None: ...

    async def remember(
        self,
        key: str,
        ttl_seconds: float,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any: ...

    def lock(self, key: str) -> asyncio.Lock: ...


class MemoryCache:
    """
    In-process TTL cache.

    Features:
    - Lazy expiry on read
    - Per-key asyncio locks for atomic read-modify-write sequences
    - Injectable clock for tests
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[Any, Optional[float]]] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default

        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            self._entries.pop(key, None)
            return default
        return value

    async def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def forget(self, key: str) -> None:
        self._entries.pop(key, None)

    async def remember(
        self,
        key: str,
        ttl_seconds: float,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value for key, computing and storing it on a miss.

        Exceptions raised by the factory propagate and nothing is cached.
        """
        sentinel = object()
        value = await self.get(key, sentinel)
        if value is not sentinel:
            return value

        value = await factory()
        await self.put(key, value, ttl_seconds)
        return value

    def lock(self, key: str) -> asyncio.Lock:
        return self._locks[key]

    def clear(self) -> None:
        self._entries.clear()
