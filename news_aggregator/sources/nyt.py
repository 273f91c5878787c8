"""
New York Times Times Wire adapter.
API docs: https://developer.nytimes.com/docs/timeswire-product/1/overview

The NYT budget is only 5 requests per minute, so this adapter is paired with
a BlockingRateLimiter that waits for the next window instead of failing.
"""
from typing import Any

from news_aggregator.core.exceptions import SourceError
from news_aggregator.models.domain import ArticleRecord
from news_aggregator.sources.base import NewsSource, parse_timestamp

SLEEP_SECONDS = 61
MAX_RETRIES = 3


class NytNewsSource(NewsSource):
    """Fetches the newest section content from the Times Wire API."""

    config_key = "nyt"

    async def fetch_articles_by_category(
        self,
        category: str,
        limit: int = 100,
    ) -> list[ArticleRecord]:
        async def load() -> list[ArticleRecord]:
            self.client.ensure_configured()

            section = self.client.profile.map_category(category)
            response = await self.client.get_json(
                f"/news/v3/content/all/{section}.json",
                params={
                    "api-key": self.client.api_key,
                    "limit": min(limit, 500),
                },
            )
            self._validate_response(response)

            return [
                self._parse_article(article, category)
                for article in response["results"]
            ]

        try:
            return await self.client.remember(category, limit, load)
        except Exception as e:
            raise self.client.error(
                "Failed to fetch articles from NYT", category, e
            ) from e

    def _validate_response(self, response: Any) -> None:
        if (
            not isinstance(response, dict)
            or response.get("status") != "OK"
            or not isinstance(response.get("results"), list)
        ):
            raise SourceError("Invalid response format from NYT API")

    def _parse_article(self, article: dict, category: str) -> ArticleRecord:
        """Parse a Times Wire result into a canonical article."""
        multimedia = article.get("multimedia") or []
        image_url = multimedia[0].get("url") if multimedia else None

        return ArticleRecord(
            title=article["title"],
            description=article.get("abstract") or "",
            content=article.get("lead_paragraph"),
            url=article["url"],
            image_url=image_url,
            author=article.get("byline") or None,
            published_at=parse_timestamp(article["published_date"]),
            external_id=article["uri"],
            category=category,
            source_identifier=self.source_identifier,
        )
