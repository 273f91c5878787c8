"""
The Guardian Open Platform adapter.
API docs: https://open-platform.theguardian.com/documentation/
"""
from typing import Any

from news_aggregator.core.exceptions import SourceError
from news_aggregator.models.domain import ArticleRecord
from news_aggregator.sources.base import NewsSource, parse_timestamp


class GuardianNewsSource(NewsSource):
    """Fetches section content from the Guardian search endpoint."""

    config_key = "guardian"

    async def fetch_articles_by_category(
        self,
        category: str,
        limit: int = 100,
    ) -> list[ArticleRecord]:
        async def load() -> list[ArticleRecord]:
            self.client.ensure_configured()

            response = await self.client.get_json(
                "/search",
                params={
                    "api-key": self.client.api_key,
                    "section": self.client.profile.map_category(category),
                    "show-fields": "all",
                    "page-size": limit,
                    "order-by": "newest",
                },
            )
            self._validate_response(response)

            return [
                self._parse_article(article, category)
                for article in response["response"]["results"]
            ]

        try:
            return await self.client.remember(category, limit, load)
        except Exception as e:
            raise self.client.error(
                "Failed to fetch articles from The Guardian", category, e
            ) from e

    def _validate_response(self, response: Any) -> None:
        if not isinstance(response, dict):
            raise SourceError("Invalid response format from The Guardian API")
        results = (response.get("response") or {}).get("results")
        if not isinstance(results, list):
            raise SourceError("Invalid response format from The Guardian API")

    def _parse_article(self, article: dict, category: str) -> ArticleRecord:
        """Parse a Guardian result into a canonical article."""
        fields = article.get("fields") or {}

        return ArticleRecord(
            title=article["webTitle"],
            description=fields.get("trailText") or "",
            content=fields.get("bodyText"),
            url=article["webUrl"],
            image_url=fields.get("thumbnail"),
            author=fields.get("byline"),
            published_at=parse_timestamp(article["webPublicationDate"]),
            external_id=article["id"],
            category=category,
            source_identifier=self.source_identifier,
        )
