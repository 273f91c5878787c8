"""
Reference data: the fixed category set and the known news providers.

Structure:
- Category: canonical slug + display name
- Source: slug, display name, adapter config key, default base URL and
  the mapping from canonical category slugs to the provider's vocabulary
"""

import re
import unicodedata
from dataclasses import dataclass, field


def slugify(value: str) -> str:
    """Lowercase, ASCII-fold and hyphenate a string ("World News" -> "world-news")."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^\w\s-]", "", value.lower())
    return re.sub(r"[-\s_]+", "-", value).strip("-")


@dataclass(frozen=True)
class CategoryDefinition:
    """A canonical news category."""

    name: str

    @property
    def slug(self) -> str:
        return slugify(self.name)


@dataclass(frozen=True)
class SourceDefinition:
    """A news provider known to the system."""

    name: str
    config_key: str
    base_url: str
    category_mapping: dict[str, str] = field(default_factory=dict)

    @property
    def slug(self) -> str:
        return slugify(self.name)


CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition("Technology"),
    CategoryDefinition("Science"),
    CategoryDefinition("Health"),
    CategoryDefinition("Sports"),
    CategoryDefinition("Entertainment"),
    CategoryDefinition("World News"),
)


SOURCES: tuple[SourceDefinition, ...] = (
    SourceDefinition(
        name="The Guardian",
        config_key="guardian",
        base_url="https://content.guardianapis.com",
        category_mapping={
            "technology": "technology",
            "science": "science",
            "health": "healthcare",
            "sports": "sport",
            "entertainment": "culture",
            "world-news": "world",
        },
    ),
    SourceDefinition(
        name="NewsAPI",
        config_key="newsapi",
        base_url="https://newsapi.org/v2",
        category_mapping={
            "technology": "technology",
            "science": "science",
            "health": "health",
            "sports": "sports",
            "entertainment": "entertainment",
            "world-news": "general",
        },
    ),
    SourceDefinition(
        name="New York Times",
        config_key="nyt",
        base_url="https://api.nytimes.com/svc",
        category_mapping={
            "technology": "technology",
            "science": "science",
            "health": "health",
            "sports": "sports",
            "entertainment": "arts",
            "world-news": "world",
        },
    ),
)


def get_source_definition(slug: str) -> SourceDefinition | None:
    """Look up a known provider by its slug."""
    for source in SOURCES:
        if source.slug == slug:
            return source
    return None
