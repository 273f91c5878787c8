"""
Base interface for news source adapters.

All providers (The Guardian, NewsAPI, New York Times) implement the
NewsSource capability interface. Behaviour they share - header construction,
HTTP with provider-level retries, response caching, rate limiting and error
translation - lives in SourceClient, which every adapter composes.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from news_aggregator.config import SourceCredentials
from news_aggregator.core.cache import Cache
from news_aggregator.core.exceptions import SourceError
from news_aggregator.models.domain import ArticleRecord
from news_aggregator.sources.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SourceProfile:
    """Snapshot of a stored source row, safe to pass between tasks."""
    slug: str
    name: str
    base_url: str
    is_active: bool = True
    category_mapping: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_db(cls, source: Any) -> "SourceProfile":
        return cls(
            slug=source.slug,
            name=source.name,
            base_url=source.base_url,
            is_active=source.is_active,
            category_mapping=dict(source.category_mapping or {}),
        )

    def map_category(self, category: str) -> str:
        return self.category_mapping.get(category, category)


def _is_transient(exc: BaseException) -> bool:
    """Transport failures and 5xx responses are worth another try."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class SourceClient:
    """
    Shared plumbing for one provider.

    Features:
    - Default + provider-specific headers
    - httpx client with base URL and timeout
    - Provider-level retries on transient failures (tenacity)
    - Response caching per (source, category, limit)
    - Per-minute request budget via a RateLimiter
    """

    def __init__(
        self,
        profile: SourceProfile,
        credentials: SourceCredentials,
        cache: Cache,
        rate_limiter: RateLimiter,
        app_name: str = "News Aggregator",
        cache_ttl_seconds: float = 900,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.profile = profile
        self.credentials = credentials
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.app_name = app_name
        self.cache_ttl_seconds = cache_ttl_seconds
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.transport = transport

    @property
    def source_identifier(self) -> str:
        return self.profile.slug

    @property
    def base_url(self) -> Optional[str]:
        return self.credentials.base_url or self.profile.base_url

    @property
    def api_key(self) -> str:
        if not self.credentials.api_key:
            raise SourceError(
                f"API key not configured for source {self.source_identifier}",
                source=self.source_identifier,
            )
        return self.credentials.api_key

    def is_configured(self) -> bool:
        return bool(self.credentials.api_key) and bool(self.base_url) and self.profile.is_active

    def ensure_configured(self) -> None:
        if not self.is_configured():
            raise SourceError(
                f"Source {self.profile.name} is not properly configured",
                source=self.source_identifier,
            )

    def headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": f"{self.app_name} News Aggregator",
        }
        if extra:
            headers.update(extra)
        return headers

    async def get_json(
        self,
        path: str,
        params: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET a JSON document, counting the request against the rate limit."""
        await self.rate_limiter.acquire()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                async with httpx.AsyncClient(
                    base_url=self.base_url,
                    headers=self.headers(headers),
                    timeout=self.timeout,
                    transport=self.transport,
                ) as client:
                    response = await client.get(path, params=params)
                    response.raise_for_status()
                    return response.json()

    async def remember(
        self,
        category: str,
        limit: int,
        loader: Callable[[], Awaitable[list[ArticleRecord]]],
    ) -> list[ArticleRecord]:
        key = f"{self.source_identifier}_articles_{category}_{limit}"
        return await self.cache.remember(key, self.cache_ttl_seconds, loader)

    def error(self, message: str, category: str, exc: Exception) -> SourceError:
        """Log a failed fetch and build the SourceError to raise."""
        logger.error(
            f"[{self.source_identifier}] Failed to fetch articles",
            source=self.source_identifier,
            category=category,
            error=str(exc),
        )
        return SourceError(
            f"{message}: {exc}",
            source=self.source_identifier,
            category=category,
        )


class NewsSource(ABC):
    """Capability interface for a news provider."""

    def __init__(self, client: SourceClient):
        self.client = client

    @property
    def source_identifier(self) -> str:
        return self.client.source_identifier

    def is_configured(self) -> bool:
        return self.client.is_configured()

    @abstractmethod
    async def fetch_articles_by_category(
        self,
        category: str,
        limit: int = 100,
    ) -> list[ArticleRecord]:
        """
        Fetch up to ``limit`` articles for a canonical category slug.

        Args:
            category: Canonical category slug (e.g. "technology")
            limit: Maximum number of articles to request

        Returns:
            Canonical ArticleRecords

        Raises:
            SourceError: unconfigured source, rate limit, malformed response
                or transport failure
        """
        pass


def parse_timestamp(value: str) -> datetime:
    """Parse a provider ISO-8601 timestamp ("Z" suffix allowed)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
