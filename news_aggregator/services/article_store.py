"""
Article Store - idempotent persistence of canonical articles.

Articles are upserted on (source id, external id). Each article is written
in its own transaction, so one bad record (unknown category, constraint
violation, unexpected error) is counted and logged without touching its
siblings. The database unique constraint on (source_id, external_id) is what
keeps racing jobs from inserting the same article twice.
"""
from collections import OrderedDict
from typing import Iterable, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from news_aggregator.core.exceptions import CategoryNotFoundError, SourceNotFoundError
from news_aggregator.core.reference_data import slugify
from news_aggregator.models.database import Database, DBArticle, DBCategory, DBSource
from news_aggregator.models.domain import ArticleRecord, StorageStats

logger = structlog.get_logger(__name__)


class CategoryLookup:
    """
    Bounded slug -> category id cache scoped to one ingestion run.

    Create one per batch (or per store call) and drop it afterwards; it never
    outlives the run that created it.
    """

    def __init__(self, maxsize: int = 128):
        self.maxsize = maxsize
        self._ids: OrderedDict[str, int] = OrderedDict()

    async def resolve(self, session: AsyncSession, slug: str) -> int:
        if slug in self._ids:
            self._ids.move_to_end(slug)
            return self._ids[slug]

        result = await session.execute(select(DBCategory.id).where(DBCategory.slug == slug))
        category_id = result.scalar_one_or_none()
        if category_id is None:
            raise CategoryNotFoundError(slug)

        self._ids[slug] = category_id
        if len(self._ids) > self.maxsize:
            self._ids.popitem(last=False)
        return category_id

    def clear(self) -> None:
        self._ids.clear()

    def __len__(self) -> int:
        return len(self._ids)


class ArticleStore:
    """Stores canonical articles for one source at a time."""

    def __init__(self, database: Database):
        self.database = database

    async def store_articles(
        self,
        articles: Iterable[ArticleRecord],
        source_identifier: str,
        categories: Optional[CategoryLookup] = None,
    ) -> StorageStats:
        """
        Upsert articles for a source and report what happened.

        Args:
            articles: Canonical articles to persist
            source_identifier: Slug of the source the articles came from
            categories: Category lookup for this run (a fresh one if omitted)

        Returns:
            created / updated / failed / total counters

        Raises:
            SourceNotFoundError: if the source itself is unknown. Per-article
                failures are never raised.
        """
        articles = list(articles)
        categories = categories if categories is not None else CategoryLookup()
        source_id = await self._get_source_id(source_identifier)
        stats = StorageStats(total=len(articles))

        for article in articles:
            try:
                async with self.database.async_session() as session:
                    async with session.begin():
                        created = await self._upsert(session, article, source_id, categories)
            except Exception as e:
                stats.failed += 1
                logger.error(
                    "Failed to store article",
                    source=source_identifier,
                    external_id=article.external_id,
                    error=str(e),
                    article=article.model_dump(mode="json"),
                )
                continue

            if created:
                stats.created += 1
            else:
                stats.updated += 1

        logger.info(
            "Article storage statistics",
            source=source_identifier,
            stats=stats.as_dict(),
        )
        return stats

    async def _get_source_id(self, source_identifier: str) -> int:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBSource.id).where(DBSource.slug == source_identifier)
            )
            source_id = result.scalar_one_or_none()

        if source_id is None:
            raise SourceNotFoundError(source_identifier)
        return source_id

    async def _upsert(
        self,
        session: AsyncSession,
        article: ArticleRecord,
        source_id: int,
        categories: CategoryLookup,
    ) -> bool:
        """Insert or update one article. Returns True if a row was created."""
        attributes = {
            "title": article.title,
            "slug": slugify(article.title)[:255],
            "description": article.description,
            "content": article.content,
            "author": article.author,
            "url": article.url,
            "image_url": article.image_url,
            "published_at": article.published_at,
            "category_id": await categories.resolve(session, article.category),
        }

        result = await session.execute(
            select(DBArticle).where(
                DBArticle.source_id == source_id,
                DBArticle.external_id == article.external_id,
            )
        )
        existing = result.scalar_one_or_none()

        if existing is not None:
            for name, value in attributes.items():
                setattr(existing, name, value)
            return False

        session.add(DBArticle(source_id=source_id, external_id=article.external_id, **attributes))
        await session.flush()
        return True

    async def exists_by_external_id(self, external_id: str, source_identifier: str) -> bool:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(func.count(DBArticle.id))
                .join(DBSource, DBArticle.source_id == DBSource.id)
                .where(DBSource.slug == source_identifier, DBArticle.external_id == external_id)
            )
            return (result.scalar() or 0) > 0

    async def count_by_source(self, source_identifier: str) -> int:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(func.count(DBArticle.id))
                .join(DBSource, DBArticle.source_id == DBSource.id)
                .where(DBSource.slug == source_identifier)
            )
            return result.scalar() or 0
