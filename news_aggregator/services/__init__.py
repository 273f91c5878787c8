"""
Services layer - storage, search and account logic.

1. Article Store (article_store.py):
   - Idempotent upsert keyed on (source, external id)
   - Per-article transaction and failure isolation

2. Search (search.py):
   - AND-combined filters
   - Explicit sort or preference-tier ranking
   - Length-aware pagination

3. Preferences (preferences.py) and Auth (auth.py):
   - Thin account glue used by the HTTP API
"""

from news_aggregator.services.article_store import ArticleStore, CategoryLookup
from news_aggregator.services.auth import AuthService
from news_aggregator.services.preferences import PreferenceService
from news_aggregator.services.search import SearchEngine

__all__ = [
    "ArticleStore",
    "CategoryLookup",
    "AuthService",
    "PreferenceService",
    "SearchEngine",
]
