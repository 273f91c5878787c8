"""
Rate limiting for provider requests.

Each source gets a per-minute request budget tracked as a counter in the
shared cache under ``rate_limit_<source>``. The counter's read-increment-write
runs under the cache's per-key lock so concurrent fetches of the same source
cannot both believe they are under budget.
"""

import asyncio
from typing import Awaitable, Callable

import structlog

from news_aggregator.core.cache import Cache
from news_aggregator.core.exceptions import SourceError

logger = structlog.get_logger(__name__)

WINDOW_SECONDS = 60


def rate_limit_key(source: str) -> str:
    return f"rate_limit_{source}"


class RateLimiter:
    """
    Fixed-window per-minute limiter that fails fast when the budget is spent.
    """

    def __init__(self, cache: Cache, source: str, max_requests_per_minute: int):
        self.cache = cache
        self.source = source
        self.max_requests_per_minute = max_requests_per_minute
        self.key = rate_limit_key(source)

    async def _try_acquire(self) -> bool:
        """Count one request if the current window has room."""
        async with self.cache.lock(self.key):
            requests = await self.cache.get(self.key, 0)
            if requests >= self.max_requests_per_minute:
                return False
            await self.cache.put(self.key, requests + 1, WINDOW_SECONDS)
            return True

    async def acquire(self) -> None:
        """
        Acquire permission to make a request.

        Raises:
            SourceError: if the source has used up its budget for this minute
        """
        if not await self._try_acquire():
            raise SourceError(f"Rate limit exceeded for {self.source}", source=self.source)


class BlockingRateLimiter(RateLimiter):
    """
    Limiter for low-budget providers: waits for the next window instead of failing.

    On hitting the cap it sleeps until the counter has expired and tries
    again, up to ``max_attempts`` before giving up. Waiters that wake together
    compete for the new window through the same locked counter.
    """

    def __init__(
        self,
        cache: Cache,
        source: str,
        max_requests_per_minute: int,
        max_attempts: int = 3,
        wait_seconds: float = 61,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(cache, source, max_requests_per_minute)
        self.max_attempts = max_attempts
        self.wait_seconds = wait_seconds
        self._sleep = sleep

    async def acquire(self) -> None:
        for attempt in range(1, self.max_attempts + 1):
            if await self._try_acquire():
                return

            if attempt == self.max_attempts:
                break

            logger.info(
                "Rate limit reached, waiting for next window",
                source=self.source,
                attempt=attempt,
                max_retries=self.max_attempts,
                wait_seconds=self.wait_seconds,
            )
            await self._sleep(self.wait_seconds)

        raise SourceError(
            f"Rate limit exceeded for {self.source} after {self.max_attempts} retries",
            source=self.source,
        )
