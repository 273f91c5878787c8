"""
FastAPI routes for the News Aggregator API.
"""
from datetime import datetime
from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Query, status
from sqlalchemy import select

from news_aggregator.api.dependencies import (
    AuthServiceDep,
    CurrentUserDep,
    OptionalUserDep,
    SessionDep,
    SettingsDep,
    TokenDep,
)
from news_aggregator.api.schemas import (
    LoginRequest,
    RegisterRequest,
    article_page,
    error,
    success,
    token_payload,
)
from news_aggregator.models.database import DBCategory, DBSource
from news_aggregator.models.domain import SearchFilters, UserPreferences, to_naive_utc
from news_aggregator.services.preferences import PreferenceService
from news_aggregator.services.search import SearchEngine

logger = structlog.get_logger(__name__)
router = APIRouter()

SORT_PATTERN = r"^-?(published_at|title)$"


# ============================================================================
# Article Routes
# ============================================================================


@router.get("/articles/search")
async def search_articles(
    session: SessionDep,
    settings: SettingsDep,
    user: OptionalUserDep,
    keyword: Annotated[Optional[str], Query(max_length=100)] = None,
    source: Optional[str] = None,
    category: Optional[str] = None,
    author: Annotated[Optional[str], Query(max_length=100)] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    sort_by: Annotated[Optional[str], Query(pattern=SORT_PATTERN)] = None,
    per_page: Annotated[Optional[int], Query(ge=1, le=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
):
    """
    Search articles.

    All filters are optional and combined with AND. Authenticated requests
    are ranked by the user's preferences instead of ``sort_by``.
    """
    errors: dict[str, list[str]] = {}

    if source is not None and not await _slug_exists(session, DBSource, source):
        errors["source"] = ["The selected source is invalid."]
    if category is not None and not await _slug_exists(session, DBCategory, category):
        errors["category"] = ["The selected category is invalid."]
    if date_from is not None and date_to is not None:
        if to_naive_utc(date_from) > to_naive_utc(date_to):
            errors["date_from"] = ["The start date must be before or equal to the end date"]
            errors["date_to"] = ["The end date must be after or equal to the start date"]

    if errors:
        logger.info("Rejected article search", fields=sorted(errors))
        return error("The given data was invalid.", errors, status.HTTP_422_UNPROCESSABLE_ENTITY)

    filters = SearchFilters(
        keyword=keyword,
        source=source,
        category=category,
        author=author,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by or "published_at",
    )

    results = await SearchEngine(session).search(
        filters,
        user=user,
        per_page=min(per_page or settings.default_page_size, settings.max_page_size),
        page=page,
    )
    return success(article_page(results))


async def _slug_exists(session, model, slug: str) -> bool:
    result = await session.execute(select(model.id).where(model.slug == slug))
    return result.scalar_one_or_none() is not None


# ============================================================================
# User Preferences Routes
# ============================================================================


@router.get("/preferences")
async def get_preferences(session: SessionDep, user: CurrentUserDep):
    preferences = await PreferenceService(session).get_user_preferences(user)
    return success(preferences.model_dump())


@router.put("/preferences")
async def update_preferences(
    payload: UserPreferences,
    session: SessionDep,
    user: CurrentUserDep,
):
    """Replace the user's preferred sources, categories and authors."""
    preferences = await PreferenceService(session).update_preferences(user, payload)
    return success(preferences.model_dump(), "Preferences updated successfully")


# ============================================================================
# Auth Routes
# ============================================================================


@router.post("/auth/register")
async def register(payload: RegisterRequest, auth: AuthServiceDep):
    user, token = await auth.register(payload.name, payload.email, payload.password)
    return success(
        token_payload(token, user),
        "Registration successful",
        status.HTTP_201_CREATED,
    )


@router.post("/auth/login")
async def login(payload: LoginRequest, auth: AuthServiceDep):
    user, token = await auth.login(payload.email, payload.password)
    return success(token_payload(token, user), "Login successful")


@router.post("/auth/logout")
async def logout(token: TokenDep, auth: AuthServiceDep):
    await auth.logout(token)
    return success(message="Logout successful")


@router.post("/auth/refresh")
async def refresh(token: TokenDep, auth: AuthServiceDep):
    new_token = await auth.refresh(token)
    return success(token_payload(new_token), "Token refreshed successfully")
