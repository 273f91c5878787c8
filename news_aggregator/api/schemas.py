"""
Request/response shapes for the HTTP API.
"""
from datetime import datetime
from typing import Any, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from news_aggregator.models.database import DBArticle, DBCategory, DBSource, DBUser
from news_aggregator.models.domain import Page


# =============================================================================
# Envelope
# =============================================================================

def success(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "success", "message": message, "data": data},
    )


def error(message: str, errors: Any = None, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, "errors": errors},
    )


# =============================================================================
# Articles
# =============================================================================

class ReferenceResource(BaseModel):
    id: int
    name: str
    slug: str

    @classmethod
    def from_db(cls, row: DBSource | DBCategory) -> "ReferenceResource":
        return cls(id=row.id, name=row.name, slug=row.slug)


class ArticleResource(BaseModel):
    """Public JSON shape of a stored article."""
    id: int
    title: str
    description: Optional[str] = None
    content: Optional[str] = None
    url: str
    image_url: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[str] = None
    source: ReferenceResource
    category: ReferenceResource

    @classmethod
    def from_db(cls, article: DBArticle) -> "ArticleResource":
        return cls(
            id=article.id,
            title=article.title,
            description=article.description,
            content=article.content,
            url=article.url,
            image_url=article.image_url,
            author=article.author,
            published_at=_iso(article.published_at),
            source=ReferenceResource.from_db(article.source),
            category=ReferenceResource.from_db(article.category),
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    # Stored timestamps are naive UTC
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def article_page(page: Page[DBArticle]) -> dict[str, Any]:
    return {
        "data": [ArticleResource.from_db(a).model_dump() for a in page.items],
        "meta": page.meta(),
    }


# =============================================================================
# Auth
# =============================================================================

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=255)


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)


class UserResource(BaseModel):
    id: int
    name: str
    email: str

    @classmethod
    def from_db(cls, user: DBUser) -> "UserResource":
        return cls(id=user.id, name=user.name, email=user.email)


def token_payload(token: str, user: Optional[DBUser] = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"token": token, "type": "bearer"}
    if user is not None:
        payload = {"user": UserResource.from_db(user).model_dump(), **payload}
    return payload
