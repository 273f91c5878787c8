from datetime import datetime
from typing import Any, Optional

import httpx
import pytest
from sqlalchemy import select

from news_aggregator.config import Settings
from news_aggregator.core.cache import MemoryCache
from news_aggregator.models.database import Database, DBArticle, DBCategory, DBSource
from news_aggregator.models.domain import ArticleRecord
from news_aggregator.sources import SourceRegistry


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        environment="testing",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        guardian_api_key="guardian-test-key",
        news_api_key="newsapi-test-key",
        nyt_api_key="nyt-test-key",
        http_retry_attempts=1,
        ingestion_retry_backoff_seconds=0,
        queue_workers_per_lane=2,
    )


@pytest.fixture
async def database(settings):
    db = Database(settings.database_url)
    await db.create_tables()
    await db.seed_reference_data()
    yield db
    await db.dispose()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def make_registry(database, settings, cache):
    def factory(handler) -> SourceRegistry:
        return SourceRegistry(database, settings, cache, transport=httpx.MockTransport(handler))
    return factory


@pytest.fixture
def make_article():
    def factory(**overrides: Any) -> ArticleRecord:
        data = {
            "title": "Chips get faster",
            "description": "A short summary",
            "content": "Full body text",
            "url": "https://example.com/chips",
            "image_url": None,
            "author": "Jane Doe",
            "published_at": datetime(2024, 1, 15, 12, 0),
            "external_id": "ext-1",
            "category": "technology",
            "source_identifier": "the-guardian",
        }
        data.update(overrides)
        return ArticleRecord(**data)
    return factory


@pytest.fixture
def ids(database):
    """Resolve seeded source/category slugs to row ids."""
    class Ids:
        async def source(self, slug: str) -> int:
            async with database.async_session() as session:
                return (await session.execute(
                    select(DBSource.id).where(DBSource.slug == slug)
                )).scalar_one()

        async def category(self, slug: str) -> int:
            async with database.async_session() as session:
                return (await session.execute(
                    select(DBCategory.id).where(DBCategory.slug == slug)
                )).scalar_one()

    return Ids()


@pytest.fixture
def insert_article(database, ids):
    """Insert a stored article row directly, bypassing the store."""
    counter = {"n": 0}

    async def factory(
        title: str = "Article",
        source: str = "the-guardian",
        category: str = "technology",
        author: Optional[str] = "Staff Writer",
        published_at: datetime = datetime(2024, 1, 1, 12, 0),
        description: str = "",
        content: Optional[str] = None,
    ) -> DBArticle:
        counter["n"] += 1
        article = DBArticle(
            source_id=await ids.source(source),
            category_id=await ids.category(category),
            external_id=f"row-{counter['n']}",
            title=title,
            slug=f"article-{counter['n']}",
            description=description,
            content=content,
            author=author,
            url=f"https://example.com/{counter['n']}",
            published_at=published_at,
        )
        async with database.async_session() as session:
            session.add(article)
            await session.commit()
        return article

    return factory
