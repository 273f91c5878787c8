"""
Tests for the per-(source, category) fetch job.
"""
import asyncio
from unittest.mock import patch

import httpx
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from structlog.testing import capture_logs

from news_aggregator.core.exceptions import SourceNotFoundError
from news_aggregator.models.database import DBSource
from news_aggregator.services.article_store import ArticleStore
from news_aggregator.jobs.fetch_articles import FetchArticlesJob


def guardian_payload(*ids: str) -> dict:
    return {
        "response": {
            "status": "ok",
            "results": [
                {
                    "id": external_id,
                    "webTitle": f"Story {external_id}",
                    "webUrl": f"https://www.theguardian.com/{external_id}",
                    "webPublicationDate": "2024-01-15T12:00:00Z",
                    "fields": {"trailText": "Trail", "byline": "Jane Doe"},
                }
                for external_id in ids
            ],
        }
    }


def make_job(registry, database, source="the-guardian", category="technology", **kwargs):
    kwargs.setdefault("retry_backoff", 0)
    return FetchArticlesJob(
        source,
        category,
        registry=registry,
        store=ArticleStore(database),
        **kwargs,
    )


async def last_synced_at(database, slug="the-guardian"):
    async with database.async_session() as session:
        return (await session.execute(
            select(DBSource.last_synced_at).where(DBSource.slug == slug)
        )).scalar_one()


class TestFetchArticlesJob:
    async def test_queue_is_named_after_source(self, make_registry, database):
        job = make_job(make_registry(lambda r: httpx.Response(200)), database)
        assert job.queue == "news-the-guardian"

    async def test_successful_run_stores_articles_and_marks_sync(self, make_registry, database):
        registry = make_registry(lambda r: httpx.Response(200, json=guardian_payload("a", "b")))
        job = make_job(registry, database)

        outcome = await job.run()

        assert outcome.succeeded
        assert outcome.attempts == 1
        assert outcome.stats.created == 2
        assert await last_synced_at(database) is not None

    async def test_source_error_is_retried(self, make_registry, database):
        responses = [httpx.Response(500), httpx.Response(200, json=guardian_payload("a"))]
        registry = make_registry(lambda r: responses.pop(0))
        job = make_job(registry, database, max_retry=3)

        outcome = await job.run()

        assert outcome.succeeded
        assert outcome.attempts == 2
        assert outcome.stats.created == 1

    async def test_exhausted_retries_call_failed(self, make_registry, database):
        registry = make_registry(lambda r: httpx.Response(500))
        job = make_job(registry, database, max_retry=3)

        with capture_logs() as logs:
            outcome = await job.run()

        assert not outcome.succeeded
        assert outcome.attempts == 3
        assert "Failed to fetch articles from The Guardian" in outcome.error

        errors = [log for log in logs if log["event"] == "Failed to fetch articles"]
        assert [log["attempts"] for log in errors] == [1, 2, 3]
        critical = [log for log in logs if log["log_level"] == "critical"]
        assert len(critical) == 1
        assert critical[0]["event"] == "News fetching job permanently failed"
        assert critical[0]["source"] == "the-guardian"
        assert critical[0]["category"] == "technology"
        assert await last_synced_at(database) is None

    async def test_unknown_source_is_not_retried(self, make_registry, database):
        job = make_job(make_registry(lambda r: httpx.Response(200)), database, source="daily-planet")

        outcome = await job.run()

        assert not outcome.succeeded
        assert outcome.attempts == 1
        assert isinstance(outcome.exception, SourceNotFoundError)

    async def test_timeout_is_a_source_error(self, make_registry, database):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json=guardian_payload("a"))

        job = make_job(make_registry(slow), database, max_retry=2, timeout=0.05)

        outcome = await job.run()

        assert not outcome.succeeded
        assert outcome.attempts == 2
        assert "timed out" in outcome.error

    async def test_partial_storage_failure_still_succeeds(self, make_registry, database):
        registry = make_registry(lambda r: httpx.Response(200, json=guardian_payload("a", "b", "c")))
        # Unknown category: every article fails to store but the job itself succeeds
        job = make_job(registry, database, category="astrology")

        outcome = await job.run()

        assert outcome.succeeded
        assert outcome.stats.failed == 3

    async def test_sync_stamp_failure_keeps_stored_stats(self, make_registry, database):
        registry = make_registry(lambda r: httpx.Response(200, json=guardian_payload("a", "b")))
        job = make_job(registry, database)
        broken = OperationalError("UPDATE sources", {}, Exception("database is locked"))

        with patch("news_aggregator.jobs.fetch_articles.update", side_effect=broken):
            with capture_logs() as logs:
                outcome = await job.run()

        assert outcome.succeeded
        assert outcome.attempts == 1
        assert outcome.stats.created == 2
        assert await last_synced_at(database) is None
        assert any(log["event"] == "Failed to record source sync time" for log in logs)
