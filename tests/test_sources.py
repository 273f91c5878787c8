"""
Tests for the news source adapters.

HTTP is served by httpx.MockTransport so no network access is needed.
"""
import hashlib
from datetime import datetime

import httpx
import pytest

from news_aggregator.core.cache import MemoryCache
from news_aggregator.core.exceptions import SourceError, SourceNotFoundError
from news_aggregator.sources import (
    BlockingRateLimiter,
    GuardianNewsSource,
    NewsApiSource,
    NytNewsSource,
    RateLimiter,
    SourceRegistry,
)
from news_aggregator.sources.base import SourceProfile

GUARDIAN_RESPONSE = {
    "response": {
        "status": "ok",
        "results": [
            {
                "id": "technology/2024/jan/15/chips",
                "webTitle": "Chips get faster",
                "webUrl": "https://www.theguardian.com/technology/2024/jan/15/chips",
                "webPublicationDate": "2024-01-15T12:00:00Z",
                "fields": {
                    "trailText": "A new generation of chips",
                    "bodyText": "Full story",
                    "thumbnail": "https://media.guim.co.uk/chips.jpg",
                    "byline": "Jane Doe",
                },
            },
            {
                "id": "technology/2024/jan/14/robots",
                "webTitle": "Robots learn to walk",
                "webUrl": "https://www.theguardian.com/technology/2024/jan/14/robots",
                "webPublicationDate": "2024-01-14T08:30:00Z",
            },
        ],
    }
}

NEWSAPI_RESPONSE = {
    "status": "ok",
    "totalResults": 1,
    "articles": [
        {
            "source": {"id": None, "name": "Example"},
            "author": "John Smith",
            "title": "Markets rally",
            "description": "Stocks are up",
            "url": "https://example.com/markets-rally",
            "urlToImage": "https://example.com/markets.jpg",
            "publishedAt": "2024-01-15T09:00:00Z",
            "content": "Markets rallied today",
        }
    ],
}

NYT_RESPONSE = {
    "status": "OK",
    "num_results": 1,
    "results": [
        {
            "uri": "nyt://article/1234",
            "title": "Broadway returns",
            "abstract": "Theatres reopen",
            "url": "https://www.nytimes.com/2024/01/15/arts/broadway.html",
            "byline": "By Alex Critic",
            "published_date": "2024-01-15T10:00:00-05:00",
            "multimedia": [
                {"url": "https://static01.nyt.com/broadway.jpg"},
                {"url": "https://static01.nyt.com/broadway-small.jpg"},
            ],
        }
    ],
}


def json_handler(payload, requests: list):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=payload)
    return handler


class TestGuardianNewsSource:
    async def test_fetch_maps_results_to_articles(self, make_registry):
        requests = []
        source = await make_registry(json_handler(GUARDIAN_RESPONSE, requests)).get("the-guardian")

        articles = await source.fetch_articles_by_category("technology", limit=10)

        assert isinstance(source, GuardianNewsSource)
        assert len(articles) == 2
        first = articles[0]
        assert first.title == "Chips get faster"
        assert first.description == "A new generation of chips"
        assert first.content == "Full story"
        assert first.image_url == "https://media.guim.co.uk/chips.jpg"
        assert first.author == "Jane Doe"
        assert first.external_id == "technology/2024/jan/15/chips"
        assert first.published_at == datetime(2024, 1, 15, 12, 0)
        assert first.category == "technology"
        assert first.source_identifier == "the-guardian"

        # Missing fields fall back to empty / None
        second = articles[1]
        assert second.description == ""
        assert second.author is None

    async def test_request_uses_mapped_section_and_api_key(self, make_registry):
        requests = []
        source = await make_registry(json_handler(GUARDIAN_RESPONSE, requests)).get("the-guardian")

        await source.fetch_articles_by_category("health", limit=25)

        request = requests[0]
        assert request.url.path == "/search"
        assert request.url.params["section"] == "healthcare"
        assert request.url.params["api-key"] == "guardian-test-key"
        assert request.url.params["page-size"] == "25"
        assert request.url.params["order-by"] == "newest"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["User-Agent"].endswith("News Aggregator")

    async def test_responses_are_cached_per_category_and_limit(self, make_registry):
        requests = []
        registry = make_registry(json_handler(GUARDIAN_RESPONSE, requests))
        source = await registry.get("the-guardian")

        await source.fetch_articles_by_category("technology", limit=10)
        await source.fetch_articles_by_category("technology", limit=10)
        assert len(requests) == 1

        await source.fetch_articles_by_category("science", limit=10)
        await source.fetch_articles_by_category("technology", limit=20)
        assert len(requests) == 3

    async def test_malformed_response_raises_source_error(self, make_registry):
        source = await make_registry(json_handler({"response": {}}, [])).get("the-guardian")

        with pytest.raises(SourceError, match="Invalid response format"):
            await source.fetch_articles_by_category("technology")

    async def test_failed_fetch_is_not_cached(self, make_registry):
        responses = [httpx.Response(200, json={"unexpected": True}), httpx.Response(200, json=GUARDIAN_RESPONSE)]

        def handler(request):
            return responses.pop(0)

        source = await make_registry(handler).get("the-guardian")

        with pytest.raises(SourceError):
            await source.fetch_articles_by_category("technology")
        assert len(await source.fetch_articles_by_category("technology")) == 2

    async def test_server_error_raises_source_error(self, make_registry):
        source = await make_registry(lambda request: httpx.Response(503)).get("the-guardian")

        with pytest.raises(SourceError) as exc_info:
            await source.fetch_articles_by_category("technology")

        assert exc_info.value.source == "the-guardian"
        assert exc_info.value.category == "technology"

    async def test_transport_error_raises_source_error(self, make_registry):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        source = await make_registry(handler).get("the-guardian")

        with pytest.raises(SourceError, match="Failed to fetch articles from The Guardian"):
            await source.fetch_articles_by_category("technology")

    async def test_unconfigured_source_raises_without_request(self, database, settings):
        requests = []
        registry = SourceRegistry(
            database,
            settings.model_copy(update={"guardian_api_key": None}),
            MemoryCache(),
            transport=httpx.MockTransport(json_handler(GUARDIAN_RESPONSE, requests)),
        )
        source = await registry.get("the-guardian")

        assert source.is_configured() is False
        with pytest.raises(SourceError, match="not properly configured"):
            await source.fetch_articles_by_category("technology")
        assert requests == []

    async def test_rate_limit_exhaustion_raises_source_error(self, database, settings):
        registry = SourceRegistry(
            database,
            settings.model_copy(update={"guardian_rate_limit": 1}),
            MemoryCache(),
            transport=httpx.MockTransport(json_handler(GUARDIAN_RESPONSE, [])),
        )
        source = await registry.get("the-guardian")

        await source.fetch_articles_by_category("technology")
        with pytest.raises(SourceError, match="Rate limit exceeded"):
            await source.fetch_articles_by_category("science")


class TestNewsApiSource:
    async def test_fetch_maps_articles_and_hashes_url(self, make_registry):
        requests = []
        source = await make_registry(json_handler(NEWSAPI_RESPONSE, requests)).get("newsapi")

        articles = await source.fetch_articles_by_category("world-news", limit=150)

        assert isinstance(source, NewsApiSource)
        article = articles[0]
        assert article.title == "Markets rally"
        assert article.author == "John Smith"
        assert article.image_url == "https://example.com/markets.jpg"
        assert article.external_id == hashlib.md5(b"https://example.com/markets-rally").hexdigest()
        assert article.category == "world-news"

        request = requests[0]
        assert request.url.path == "/v2/top-headlines"
        assert request.url.params["category"] == "general"
        assert request.url.params["pageSize"] == "100"
        assert request.url.params["language"] == "en"
        assert request.headers["X-Api-Key"] == "newsapi-test-key"

    async def test_error_status_raises_source_error(self, make_registry):
        payload = {"status": "error", "code": "apiKeyInvalid", "message": "Your API key is invalid"}
        source = await make_registry(json_handler(payload, [])).get("newsapi")

        with pytest.raises(SourceError, match="Invalid response format from NewsAPI"):
            await source.fetch_articles_by_category("technology")


class TestNytNewsSource:
    async def test_fetch_maps_results(self, make_registry):
        requests = []
        source = await make_registry(json_handler(NYT_RESPONSE, requests)).get("new-york-times")

        articles = await source.fetch_articles_by_category("entertainment", limit=1000)

        assert isinstance(source, NytNewsSource)
        article = articles[0]
        assert article.external_id == "nyt://article/1234"
        assert article.author == "By Alex Critic"
        assert article.image_url == "https://static01.nyt.com/broadway.jpg"
        assert article.description == "Theatres reopen"
        assert article.published_at == datetime(2024, 1, 15, 15, 0)

        request = requests[0]
        assert request.url.path == "/svc/news/v3/content/all/arts.json"
        assert request.url.params["limit"] == "500"
        assert request.url.params["api-key"] == "nyt-test-key"

    async def test_lowercase_status_is_rejected(self, make_registry):
        payload = dict(NYT_RESPONSE, status="ok")
        source = await make_registry(json_handler(payload, [])).get("new-york-times")

        with pytest.raises(SourceError):
            await source.fetch_articles_by_category("technology")


class TestSourceRegistry:
    async def test_nyt_gets_blocking_rate_limiter(self, make_registry):
        registry = make_registry(json_handler({}, []))

        nyt = await registry.get("new-york-times")
        guardian = await registry.get("the-guardian")

        assert isinstance(nyt.client.rate_limiter, BlockingRateLimiter)
        assert nyt.client.rate_limiter.max_requests_per_minute == 5
        assert type(guardian.client.rate_limiter) is RateLimiter
        assert guardian.client.rate_limiter.max_requests_per_minute == 12

    async def test_unknown_source_raises(self, make_registry):
        with pytest.raises(SourceNotFoundError):
            await make_registry(json_handler({}, [])).get("daily-planet")

    async def test_active_sources_in_slug_order(self, make_registry):
        sources = await make_registry(json_handler({}, [])).active_sources()
        assert [s.source_identifier for s in sources] == ["new-york-times", "newsapi", "the-guardian"]


class TestSourceProfile:
    def test_unmapped_category_passes_through(self):
        profile = SourceProfile(
            slug="the-guardian",
            name="The Guardian",
            base_url="https://content.guardianapis.com",
            category_mapping={"sports": "sport"},
        )
        assert profile.map_category("sports") == "sport"
        assert profile.map_category("technology") == "technology"
