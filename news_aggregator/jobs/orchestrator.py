"""
Batch orchestrator - fans ingestion out per source.

For the selected sources and categories it builds one FetchArticlesJob per
(source, category) pair, groups each source's jobs into a Batch on queue
"news-<source>" and runs every batch on its own work lane.
"""
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import structlog
from sqlalchemy import select

from news_aggregator.config import Settings
from news_aggregator.core.exceptions import ConfigurationError
from news_aggregator.jobs.batch import Batch, WorkQueue
from news_aggregator.jobs.fetch_articles import FetchArticlesJob, JobOutcome, queue_name
from news_aggregator.models.database import Database, DBCategory
from news_aggregator.services.article_store import ArticleStore, CategoryLookup
from news_aggregator.sources import NewsSource, SourceRegistry

logger = structlog.get_logger(__name__)


@dataclass
class BatchSummary:
    """What happened to one source's batch."""
    name: str
    source_identifier: str
    total_jobs: int
    failed_jobs: int
    elapsed_seconds: float
    outcomes: list[JobOutcome] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source_identifier,
            "total_jobs": self.total_jobs,
            "failed_jobs": self.failed_jobs,
            "processing_time": round(self.elapsed_seconds, 2),
        }


def _on_batch_success(batch: Batch) -> None:
    logger.info(
        "Batch processing completed",
        batch=batch.name,
        total_jobs=batch.total_jobs,
        failed_jobs=batch.failed_jobs,
        processing_time=f"{batch.elapsed_seconds:.2f} seconds",
    )


def _on_batch_failure(batch: Batch, exc: BaseException) -> None:
    logger.error(
        "Batch processing failed",
        batch=batch.name,
        total_jobs=batch.total_jobs,
        failed_jobs=batch.failed_jobs,
        error=str(exc),
    )


def _on_batch_complete(batch: Batch) -> None:
    logger.info(
        "News fetching batch summary",
        batch=batch.name,
        total_jobs=batch.total_jobs,
        failed_jobs=batch.failed_jobs,
        processing_time=f"{batch.elapsed_seconds:.2f} seconds",
    )


class NewsFetchOrchestrator:
    """
    Runs a full fetch across sources and categories.

    Each batch gets its own CategoryLookup, shared by the batch's jobs and
    dropped once the batch is done.
    """

    def __init__(
        self,
        database: Database,
        settings: Settings,
        registry: SourceRegistry,
        store: Optional[ArticleStore] = None,
    ):
        self.database = database
        self.settings = settings
        self.registry = registry
        self.store = store or ArticleStore(database)

    async def fetch(
        self,
        sources: Optional[Sequence[str]] = None,
        categories: Optional[Sequence[str]] = None,
        max_retry: int = 3,
        timeout: float = 300,
    ) -> list[BatchSummary]:
        """
        Fetch every selected category from every selected source.

        Args:
            sources: Source identifiers to restrict to (None or empty = all)
            categories: Category slugs to restrict to (None or empty = all)
            max_retry: Attempts per job
            timeout: Per-attempt fetch timeout in seconds

        Returns:
            One BatchSummary per source

        Raises:
            ConfigurationError: if no source or no category is selected
        """
        news_sources = await self.resolve_sources(sources)
        category_slugs = await self.resolve_categories(categories)

        if not news_sources:
            raise ConfigurationError("No news sources configured or available.")
        if not category_slugs:
            raise ConfigurationError("No news categories configured.")

        logger.info(
            f"Fetching news from {len(news_sources)} sources "
            f"for {len(category_slugs)} categories",
            sources=[s.source_identifier for s in news_sources],
            categories=category_slugs,
        )

        work_queue = WorkQueue(workers_per_lane=self.settings.queue_workers_per_lane)
        batches: list[Batch] = []
        try:
            for source in news_sources:
                batch = self._build_batch(source, category_slugs, max_retry, timeout)
                logger.info(
                    f"Creating batch for source {source.source_identifier} "
                    f"with {len(category_slugs)} categories",
                    source=source.source_identifier,
                    queue=batch.queue,
                )
                batches.append(work_queue.dispatch(batch))

            await work_queue.wait()
        finally:
            await work_queue.close()

        return [
            BatchSummary(
                name=batch.name,
                source_identifier=source.source_identifier,
                total_jobs=batch.total_jobs,
                failed_jobs=batch.failed_jobs,
                elapsed_seconds=batch.elapsed_seconds,
                outcomes=list(batch.outcomes),
            )
            for source, batch in zip(news_sources, batches)
        ]

    def _build_batch(
        self,
        source: NewsSource,
        category_slugs: list[str],
        max_retry: int,
        timeout: float,
    ) -> Batch:
        source_identifier = source.source_identifier
        lookup = CategoryLookup()

        jobs = [
            FetchArticlesJob(
                source_identifier,
                category,
                max_retry=max_retry,
                timeout=timeout,
                registry=self.registry,
                store=self.store,
                categories=lookup,
                limit=self.settings.source_fetch_limit,
                retry_backoff=self.settings.ingestion_retry_backoff_seconds,
            )
            for category in category_slugs
        ]

        return (
            Batch(f"News fetch: {source_identifier}", jobs)
            .on_queue(queue_name(source_identifier))
            .allow_failures()
            .then(_on_batch_success)
            .catch(_on_batch_failure)
            .finally_(_on_batch_complete)
            .finally_(lambda batch: lookup.clear())
        )

    async def resolve_sources(self, identifiers: Optional[Sequence[str]] = None) -> list[NewsSource]:
        """Active, configured sources, optionally restricted to ``identifiers``."""
        available = await self.registry.active_sources()
        if identifiers:
            wanted = set(identifiers)
            available = [s for s in available if s.source_identifier in wanted]

        configured = []
        for source in available:
            if source.is_configured():
                configured.append(source)
            else:
                logger.warning(
                    "Skipping unconfigured news source",
                    source=source.source_identifier,
                )
        return configured

    async def resolve_categories(self, slugs: Optional[Sequence[str]] = None) -> list[str]:
        query = select(DBCategory.slug).order_by(DBCategory.id)
        if slugs:
            query = query.where(DBCategory.slug.in_(list(slugs)))

        async with self.database.async_session() as session:
            return list((await session.execute(query)).scalars().all())
