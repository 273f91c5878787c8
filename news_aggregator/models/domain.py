"""
Domain models for the News Aggregator.
These are the core business entities, independent of database/API representation.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")


def to_naive_utc(value: datetime) -> datetime:
    """Normalize a datetime to naive UTC, the storage convention."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# =============================================================================
# Articles
# =============================================================================

class ArticleRecord(BaseModel):
    """Canonical article, normalized from any provider payload."""
    title: str
    description: str = ""
    content: Optional[str] = None
    url: str
    image_url: Optional[str] = None
    author: Optional[str] = None
    published_at: datetime
    external_id: str  # Provider-native id, or a hash of the URL
    category: str  # Canonical category slug
    source_identifier: str

    @field_validator("published_at")
    @classmethod
    def normalize_published_at(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Any) -> str:
        return v or ""


@dataclass
class StorageStats:
    """Outcome of storing one batch of articles for one source."""
    created: int = 0
    updated: int = 0
    failed: int = 0
    total: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "total": self.total,
        }


# =============================================================================
# Search
# =============================================================================

SORTABLE_FIELDS = ("published_at", "title")


class SearchFilters(BaseModel):
    """Article search criteria. Every filter is optional and AND-combined."""
    keyword: Optional[str] = Field(default=None, max_length=100)
    source: Optional[str] = None
    category: Optional[str] = None
    author: Optional[str] = Field(default=None, max_length=100)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: str = "published_at"

    @field_validator("date_from", "date_to")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v is not None else None


@dataclass
class PreferenceSet:
    """A user's preferences flattened per dimension."""
    source_ids: list[int] = field(default_factory=list)
    category_ids: list[int] = field(default_factory=list)
    authors: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.source_ids or self.category_ids or self.authors)


@dataclass
class Page(Generic[T]):
    """One page of a length-aware paginated result."""
    items: list[T]
    total: int
    per_page: int
    current_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def first_item(self) -> Optional[int]:
        if not self.items:
            return None
        return (self.current_page - 1) * self.per_page + 1

    @property
    def last_item(self) -> Optional[int]:
        if not self.items:
            return None
        return self.first_item + len(self.items) - 1

    def meta(self) -> dict[str, Optional[int]]:
        return {
            "current_page": self.current_page,
            "from": self.first_item,
            "last_page": self.last_page,
            "per_page": self.per_page,
            "to": self.last_item,
            "total": self.total,
        }


# =============================================================================
# Preferences API shapes
# =============================================================================

class UserPreferences(BaseModel):
    """A user's preferences as exposed over the API (slugs and names)."""
    sources: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    authors: list[str] = Field(default_factory=list)
