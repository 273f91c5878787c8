"""
Search/Ranking Engine - filtered, paginated article search.

Filtering:
    keyword     case-insensitive "contains" over title, description, content
    source      exact source slug
    category    exact category slug
    author      case-insensitive "contains"
    date_from   published_at >= date_from
    date_to     published_at <= date_to

Ordering, one of two modes:

EXPLICIT SORT (no user):
    sort_by in {published_at, -published_at, title, -title}; a leading "-"
    means descending. Anything else falls back to -published_at.

PREFERENCE TIERS (user given):
    Each preference dimension (source, category, author) contributes 1 when
    the article matches it:

        tier = 4 - (source_match + category_match + author_match)

    Tier 1 = all three match, tier 4 = none. Lower tiers sort first and ties
    are broken by published_at descending. A dimension the user has no
    preferences for never matches, so an empty preference list cannot make
    every article look like a match.
"""
from typing import Optional

import structlog
from sqlalchemy import ColumnElement, Select, case, false, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from news_aggregator.models.database import (
    DBArticle,
    DBCategory,
    DBSource,
    DBUser,
    DBUserPreference,
)
from news_aggregator.models.domain import SORTABLE_FIELDS, Page, PreferenceSet, SearchFilters

logger = structlog.get_logger(__name__)

MIN_PER_PAGE = 1
MAX_PER_PAGE = 100


def _contains(column, value: str) -> ColumnElement[bool]:
    return column.ilike(f"%{value}%")


def _membership(column, values: list) -> ColumnElement[bool]:
    """``column IN (values)``, or constant false when there are no values."""
    if not values:
        return false()
    return column.in_(values)


def preference_tier(preferences: PreferenceSet) -> ColumnElement[int]:
    """SQL expression computing an article's preference tier (1-4)."""
    clauses = [
        _membership(DBArticle.source_id, preferences.source_ids),
        _membership(DBArticle.category_id, preferences.category_ids),
        _membership(DBArticle.author, preferences.authors),
    ]
    matches = sum(
        (case((clause, 1), else_=0) for clause in clauses),
        start=literal(0),
    )
    return literal(4) - matches


class SearchEngine:
    """Applies filters, then explicit or preference-tiered ordering, then pagination."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def search(
        self,
        filters: SearchFilters,
        user: Optional[DBUser] = None,
        per_page: int = 15,
        page: int = 1,
    ) -> Page[DBArticle]:
        """
        Search stored articles.

        Args:
            filters: Optional, AND-combined filter criteria
            user: Requesting user; switches ordering to preference tiers
            per_page: Page size, clamped to 1-100
            page: 1-based page number

        Returns:
            A Page of articles with their source and category loaded
        """
        per_page = max(MIN_PER_PAGE, min(per_page, MAX_PER_PAGE))
        page = max(1, page)

        query = self.apply_filters(select(DBArticle), filters)

        total = (
            await self.session.execute(
                select(func.count()).select_from(query.order_by(None).subquery())
            )
        ).scalar_one()

        if user is not None:
            preferences = await self.load_preferences(user.id)
            query = query.order_by(preference_tier(preferences), DBArticle.published_at.desc())
        else:
            query = self.apply_sorting(query, filters.sort_by)

        query = (
            query.order_by(DBArticle.id.desc())
            .options(selectinload(DBArticle.source), selectinload(DBArticle.category))
            .limit(per_page)
            .offset((page - 1) * per_page)
        )
        items = list((await self.session.execute(query)).scalars().all())

        logger.debug(
            "Article search",
            filters=filters.model_dump(exclude_none=True, mode="json"),
            user_id=user.id if user is not None else None,
            total=total,
            page=page,
        )

        return Page(items=items, total=total, per_page=per_page, current_page=page)

    @staticmethod
    def apply_filters(query: Select, filters: SearchFilters) -> Select:
        if filters.keyword:
            query = query.where(
                or_(
                    _contains(DBArticle.title, filters.keyword),
                    _contains(DBArticle.description, filters.keyword),
                    _contains(DBArticle.content, filters.keyword),
                )
            )

        if filters.source:
            query = query.where(DBArticle.source.has(DBSource.slug == filters.source))

        if filters.category:
            query = query.where(DBArticle.category.has(DBCategory.slug == filters.category))

        if filters.author:
            query = query.where(_contains(DBArticle.author, filters.author))

        if filters.date_from:
            query = query.where(DBArticle.published_at >= filters.date_from)

        if filters.date_to:
            query = query.where(DBArticle.published_at <= filters.date_to)

        return query

    @staticmethod
    def apply_sorting(query: Select, sort_by: Optional[str]) -> Select:
        sort_by = sort_by or "published_at"
        descending = sort_by.startswith("-")
        field = sort_by[1:] if descending else sort_by

        if field not in SORTABLE_FIELDS:
            return query.order_by(DBArticle.published_at.desc())

        column = getattr(DBArticle, field)
        return query.order_by(column.desc() if descending else column.asc())

    async def load_preferences(self, user_id: int) -> PreferenceSet:
        result = await self.session.execute(
            select(
                DBUserPreference.source_id,
                DBUserPreference.category_id,
                DBUserPreference.author_name,
            ).where(DBUserPreference.user_id == user_id)
        )

        preferences = PreferenceSet()
        for source_id, category_id, author_name in result.all():
            if source_id is not None:
                preferences.source_ids.append(source_id)
            if category_id is not None:
                preferences.category_ids.append(category_id)
            if author_name is not None:
                preferences.authors.append(author_name)
        return preferences
