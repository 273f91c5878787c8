"""
Fetch job - one (source, category) unit of ingestion work.

A job resolves the source adapter, fetches one category with a hard timeout,
stores the result through the ArticleStore and stamps the source's
last_synced_at. SourceErrors are retried up to max_retry attempts; anything
else (unknown source, unknown category) fails immediately.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from news_aggregator.core.exceptions import SourceError
from news_aggregator.models.database import Database, DBSource
from news_aggregator.models.domain import StorageStats
from news_aggregator.services.article_store import ArticleStore, CategoryLookup
from news_aggregator.sources import SourceRegistry

logger = structlog.get_logger(__name__)


def queue_name(source_identifier: str) -> str:
    return f"news-{source_identifier}"


@dataclass
class JobOutcome:
    """Result of running a FetchArticlesJob to completion."""
    source_identifier: str
    category: str
    attempts: int
    stats: Optional[StorageStats] = None
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.error is None


class FetchArticlesJob:
    """Fetch and store one category from one source."""

    def __init__(
        self,
        source_identifier: str,
        category: str,
        max_retry: int = 3,
        timeout: float = 300,
        *,
        registry: SourceRegistry,
        store: ArticleStore,
        categories: Optional[CategoryLookup] = None,
        limit: int = 100,
        retry_backoff: float = 5.0,
    ):
        self.source_identifier = source_identifier
        self.category = category
        self.max_retry = max(1, max_retry)
        self.timeout = timeout
        self.registry = registry
        self.store = store
        self.categories = categories
        self.limit = limit
        self.retry_backoff = retry_backoff
        self.queue = queue_name(source_identifier)
        self.attempts = 0

    @property
    def database(self) -> Database:
        return self.store.database

    async def handle(self) -> StorageStats:
        """Perform a single attempt."""
        self.attempts += 1

        try:
            source = await self.registry.get(self.source_identifier)

            logger.info(
                f"Fetching {self.category} articles from {self.source_identifier}",
                source=self.source_identifier,
                category=self.category,
                attempt=self.attempts,
            )

            try:
                articles = await asyncio.wait_for(
                    source.fetch_articles_by_category(self.category, self.limit),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                raise SourceError(
                    f"Fetching {self.category} from {self.source_identifier} "
                    f"timed out after {self.timeout}s",
                    source=self.source_identifier,
                    category=self.category,
                )

            logger.info(
                f"Fetched {len(articles)} articles from {self.source_identifier} "
                f"in category {self.category}",
                source=self.source_identifier,
                category=self.category,
                count=len(articles),
            )

            stats = await self.store.store_articles(
                articles, self.source_identifier, self.categories
            )

            logger.info(
                "Article storage completed",
                source=self.source_identifier,
                category=self.category,
                stats=stats.as_dict(),
            )

            await self._mark_synced()
            return stats

        except SourceError as e:
            logger.error(
                "Failed to fetch articles",
                source=self.source_identifier,
                category=self.category,
                error=str(e),
                attempts=self.attempts,
            )
            raise

    async def run(self) -> JobOutcome:
        """Run the job with retries. Never raises."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retry),
                wait=wait_fixed(self.retry_backoff),
                retry=retry_if_exception_type(SourceError),
                reraise=True,
            ):
                with attempt:
                    stats = await self.handle()
        except Exception as e:
            return self.failed(e)

        return JobOutcome(
            source_identifier=self.source_identifier,
            category=self.category,
            attempts=self.attempts,
            stats=stats,
        )

    def failed(self, exc: BaseException) -> JobOutcome:
        logger.critical(
            "News fetching job permanently failed",
            source=self.source_identifier,
            category=self.category,
            attempts=self.attempts,
            error=str(exc),
        )
        return JobOutcome(
            source_identifier=self.source_identifier,
            category=self.category,
            attempts=self.attempts,
            error=str(exc),
            exception=exc,
        )

    async def _mark_synced(self) -> None:
        """Stamp last_synced_at; failures are logged, not raised."""
        try:
            async with self.database.async_session() as session:
                await session.execute(
                    update(DBSource)
                    .where(DBSource.slug == self.source_identifier)
                    .values(last_synced_at=datetime.utcnow())
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to record source sync time",
                source=self.source_identifier,
                category=self.category,
                error=str(e),
            )
