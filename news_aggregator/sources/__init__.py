"""
News source adapters and the registry that builds them from stored sources.
"""
from typing import Optional

import httpx
from sqlalchemy import select

from news_aggregator.config import Settings
from news_aggregator.core.cache import Cache
from news_aggregator.core.exceptions import SourceNotFoundError
from news_aggregator.core.reference_data import get_source_definition
from news_aggregator.models.database import Database, DBSource
from news_aggregator.sources import nyt
from news_aggregator.sources.base import NewsSource, SourceClient, SourceProfile
from news_aggregator.sources.guardian import GuardianNewsSource
from news_aggregator.sources.newsapi import NewsApiSource
from news_aggregator.sources.nyt import NytNewsSource
from news_aggregator.sources.rate_limiter import BlockingRateLimiter, RateLimiter

SOURCE_CLASSES: dict[str, type[NewsSource]] = {
    GuardianNewsSource.config_key: GuardianNewsSource,
    NewsApiSource.config_key: NewsApiSource,
    NytNewsSource.config_key: NytNewsSource,
}


def config_key_for(slug: str) -> str:
    """Map a stored source slug (e.g. "the-guardian") to its adapter key."""
    definition = get_source_definition(slug)
    return definition.config_key if definition else slug


class SourceRegistry:
    """
    Builds NewsSource adapters for stored sources.

    The cache is shared by every adapter the registry builds, so response
    caching and rate limit counters are common to all fetches of a source.
    """

    def __init__(
        self,
        database: Database,
        settings: Settings,
        cache: Cache,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.database = database
        self.settings = settings
        self.cache = cache
        self.transport = transport

    def build(self, profile: SourceProfile) -> NewsSource:
        key = config_key_for(profile.slug)
        source_class = SOURCE_CLASSES.get(key)
        if source_class is None:
            raise SourceNotFoundError(profile.slug)

        credentials = self.settings.source_credentials(key)
        if source_class is NytNewsSource:
            rate_limiter: RateLimiter = BlockingRateLimiter(
                self.cache,
                profile.slug,
                credentials.max_requests_per_minute,
                max_attempts=nyt.MAX_RETRIES,
                wait_seconds=nyt.SLEEP_SECONDS,
            )
        else:
            rate_limiter = RateLimiter(
                self.cache, profile.slug, credentials.max_requests_per_minute
            )

        client = SourceClient(
            profile=profile,
            credentials=credentials,
            cache=self.cache,
            rate_limiter=rate_limiter,
            app_name=self.settings.app_name,
            cache_ttl_seconds=self.settings.source_cache_ttl_seconds,
            timeout=self.settings.http_timeout_seconds,
            retry_attempts=self.settings.http_retry_attempts,
            transport=self.transport,
        )
        return source_class(client)

    async def get(self, source_identifier: str) -> NewsSource:
        """Build the adapter for one stored source."""
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBSource).where(DBSource.slug == source_identifier)
            )
            source = result.scalar_one_or_none()

        if source is None:
            raise SourceNotFoundError(source_identifier)
        return self.build(SourceProfile.from_db(source))

    async def active_sources(self) -> list[NewsSource]:
        """Adapters for every active source, in slug order."""
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBSource).where(DBSource.is_active.is_(True)).order_by(DBSource.slug)
            )
            sources = result.scalars().all()

        return [
            self.build(SourceProfile.from_db(source))
            for source in sources
            if config_key_for(source.slug) in SOURCE_CLASSES
        ]


__all__ = [
    "NewsSource",
    "SourceClient",
    "SourceProfile",
    "SourceRegistry",
    "GuardianNewsSource",
    "NewsApiSource",
    "NytNewsSource",
    "RateLimiter",
    "BlockingRateLimiter",
]
