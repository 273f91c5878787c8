"""
User preference storage.

Preferences are stored as sparse single-dimension rows (source XOR category
XOR author). Updates replace the whole set in one transaction after every
referenced slug has been validated.
"""
import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from news_aggregator.core.exceptions import PreferenceError
from news_aggregator.models.database import DBCategory, DBSource, DBUser, DBUserPreference
from news_aggregator.models.domain import UserPreferences

logger = structlog.get_logger(__name__)


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


class PreferenceService:
    """Reads and replaces a user's source, category and author preferences."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user_preferences(self, user: DBUser) -> UserPreferences:
        result = await self.session.execute(
            select(DBUserPreference, DBSource.slug, DBCategory.slug)
            .outerjoin(DBSource, DBUserPreference.source_id == DBSource.id)
            .outerjoin(DBCategory, DBUserPreference.category_id == DBCategory.id)
            .where(DBUserPreference.user_id == user.id)
            .order_by(DBUserPreference.id)
        )

        preferences = UserPreferences()
        for preference, source_slug, category_slug in result.all():
            if preference.source_id is not None:
                preferences.sources.append(source_slug)
            elif preference.category_id is not None:
                preferences.categories.append(category_slug)
            elif preference.author_name is not None:
                preferences.authors.append(preference.author_name)
        return preferences

    async def update_preferences(
        self,
        user: DBUser,
        update: UserPreferences,
    ) -> UserPreferences:
        """
        Replace all of a user's preferences.

        Raises:
            PreferenceError: if any source or category slug is unknown; nothing
                is changed in that case
        """
        sources = _unique(update.sources)
        categories = _unique(update.categories)
        authors = _unique([a.strip() for a in update.authors if a.strip()])

        source_ids = await self._resolve(DBSource, sources, "sources")
        category_ids = await self._resolve(DBCategory, categories, "categories")

        await self.session.execute(
            delete(DBUserPreference).where(DBUserPreference.user_id == user.id)
        )
        for source_id in source_ids:
            self.session.add(DBUserPreference(user_id=user.id, source_id=source_id))
        for category_id in category_ids:
            self.session.add(DBUserPreference(user_id=user.id, category_id=category_id))
        for author in authors:
            self.session.add(DBUserPreference(user_id=user.id, author_name=author))

        await self.session.commit()

        logger.info(
            "Updated user preferences",
            user_id=user.id,
            sources=len(source_ids),
            categories=len(category_ids),
            authors=len(authors),
        )
        return await self.get_user_preferences(user)

    async def _resolve(self, model, slugs: list[str], field: str) -> list[int]:
        if not slugs:
            return []

        result = await self.session.execute(
            select(model.slug, model.id).where(model.slug.in_(slugs))
        )
        ids_by_slug = dict(result.all())

        missing = [slug for slug in slugs if slug not in ids_by_slug]
        if missing:
            raise PreferenceError(
                f"One or more invalid {field} provided: {', '.join(missing)}",
                field=field,
            )
        return [ids_by_slug[slug] for slug in slugs]
