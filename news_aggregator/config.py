"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceCredentials(BaseModel):
    """Credentials and budget for a single news provider."""

    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_requests_per_minute: int = Field(default=30, ge=1)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "News Aggregator"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)
    environment: Literal["development", "staging", "production", "testing"] = "development"
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./news_aggregator.db",
        description="Async database URL (SQLAlchemy format)",
    )

    # Provider credentials (all optional; an unset key leaves the source unconfigured)
    guardian_api_key: Optional[str] = Field(default=None)
    guardian_base_url: str = Field(default="https://content.guardianapis.com")
    guardian_rate_limit: int = Field(default=12, ge=1)

    news_api_key: Optional[str] = Field(default=None)
    news_api_base_url: str = Field(default="https://newsapi.org/v2")
    news_api_rate_limit: int = Field(default=100, ge=1)

    nyt_api_key: Optional[str] = Field(default=None)
    nyt_base_url: str = Field(default="https://api.nytimes.com/svc")
    nyt_rate_limit: int = Field(default=5, ge=1)

    # Source adapters
    source_cache_ttl_seconds: int = Field(
        default=900,
        description="How long a successful (source, category) fetch is reused",
    )
    source_fetch_limit: int = Field(default=100, ge=1, le=500)
    http_timeout_seconds: float = Field(default=30.0)
    http_retry_attempts: int = Field(default=3, ge=1)

    # Ingestion
    ingestion_max_retry: int = Field(default=3, ge=1)
    ingestion_timeout_seconds: int = Field(default=300, ge=1)
    ingestion_retry_backoff_seconds: float = Field(default=5.0, ge=0.0)
    queue_workers_per_lane: int = Field(default=2, ge=1)

    # Scheduler
    ingestion_schedule_enabled: bool = Field(default=False)
    ingestion_cron_hour: str = Field(default="*/6")
    ingestion_cron_minute: str = Field(default="0")

    # Auth
    access_token_ttl_minutes: int = Field(default=60, ge=1)

    # Pagination
    default_page_size: int = Field(default=15, ge=1, le=100)
    max_page_size: int = Field(default=100, ge=1, le=100)

    def source_credentials(self, key: str) -> SourceCredentials:
        """Resolve the credentials for a source config key (guardian, newsapi, nyt)."""
        if key == "guardian":
            return SourceCredentials(
                api_key=self.guardian_api_key,
                base_url=self.guardian_base_url,
                max_requests_per_minute=self.guardian_rate_limit,
            )
        if key == "newsapi":
            return SourceCredentials(
                api_key=self.news_api_key,
                base_url=self.news_api_base_url,
                max_requests_per_minute=self.news_api_rate_limit,
            )
        if key == "nyt":
            return SourceCredentials(
                api_key=self.nyt_api_key,
                base_url=self.nyt_base_url,
                max_requests_per_minute=self.nyt_rate_limit,
            )
        return SourceCredentials()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
