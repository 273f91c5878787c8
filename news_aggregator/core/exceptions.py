"""
Exception hierarchy shared by ingestion, storage and the API layer.
"""
from typing import Optional


class NewsAggregatorError(Exception):
    """Base class for all application errors."""


class ConfigurationError(NewsAggregatorError):
    """Invalid or empty configuration. Never retried."""


class SourceNotFoundError(ConfigurationError):
    """A source identifier does not resolve to a stored source."""

    def __init__(self, source_identifier: str):
        self.source_identifier = source_identifier
        super().__init__(f"Source not found: {source_identifier}")


class CategoryNotFoundError(ConfigurationError):
    """A category slug does not resolve to a stored category."""

    def __init__(self, category_slug: str):
        self.category_slug = category_slug
        super().__init__(f"Category not found: {category_slug}")


class SourceError(NewsAggregatorError):
    """
    Failure talking to an external news provider.

    Raised for missing configuration, exceeded rate limits, malformed
    responses and transport failures. Fetch jobs retry on this error.
    """

    def __init__(self, message: str, source: Optional[str] = None, category: Optional[str] = None):
        self.source = source
        self.category = category
        super().__init__(message)


class InvalidRequestError(NewsAggregatorError):
    """A request payload failed a domain-level validation rule."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class PreferenceError(InvalidRequestError):
    """Invalid preference payload (unknown slugs, bad values)."""


class AuthenticationError(NewsAggregatorError):
    """Bad credentials or an invalid / expired bearer token."""
