"""
NewsAPI adapter for top headlines.
API docs: https://newsapi.org/docs
"""
import hashlib
from typing import Any

from news_aggregator.core.exceptions import SourceError
from news_aggregator.models.domain import ArticleRecord
from news_aggregator.sources.base import NewsSource, parse_timestamp


def url_external_id(url: str) -> str:
    """NewsAPI has no stable article ids, so identity is the MD5 of the URL."""
    return hashlib.md5(url.encode()).hexdigest()


class NewsApiSource(NewsSource):
    """Fetches category headlines from NewsAPI."""

    config_key = "newsapi"

    async def fetch_articles_by_category(
        self,
        category: str,
        limit: int = 100,
    ) -> list[ArticleRecord]:
        async def load() -> list[ArticleRecord]:
            self.client.ensure_configured()

            response = await self.client.get_json(
                "/top-headlines",
                params={
                    "category": self.client.profile.map_category(category),
                    "pageSize": min(limit, 100),
                    "language": "en",
                },
                headers={"X-Api-Key": self.client.api_key},
            )
            self._validate_response(response)

            return [
                self._parse_article(article, category)
                for article in response["articles"]
            ]

        try:
            return await self.client.remember(category, limit, load)
        except Exception as e:
            raise self.client.error(
                "Failed to fetch articles from NewsAPI", category, e
            ) from e

    def _validate_response(self, response: Any) -> None:
        if (
            not isinstance(response, dict)
            or response.get("status") != "ok"
            or not isinstance(response.get("articles"), list)
        ):
            raise SourceError("Invalid response format from NewsAPI")

    def _parse_article(self, article: dict, category: str) -> ArticleRecord:
        """Parse a NewsAPI article into a canonical article."""
        url = article["url"]

        return ArticleRecord(
            title=article["title"],
            description=article.get("description") or "",
            content=article.get("content"),
            url=url,
            image_url=article.get("urlToImage"),
            author=article.get("author"),
            published_at=parse_timestamp(article["publishedAt"]),
            external_id=url_external_id(url),
            category=category,
            source_identifier=self.source_identifier,
        )
