"""
SQLAlchemy database models for the News Aggregator.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from news_aggregator.core.reference_data import CATEGORIES, SOURCES

logger = structlog.get_logger(__name__)


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Reference data
# =============================================================================

class DBSource(Base):
    """A configured external news provider."""
    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    category_mapping: Mapped[Optional[dict]] = mapped_column(JSON)
    base_url: Mapped[str] = mapped_column(String(255), nullable=False)
    api_key: Mapped[Optional[str]] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    articles: Mapped[list["DBArticle"]] = relationship(back_populates="source")

    __table_args__ = (
        Index("ix_sources_is_active", "is_active"),
    )


class DBCategory(Base):
    """Canonical news category."""
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    articles: Mapped[list["DBArticle"]] = relationship(back_populates="category")


# =============================================================================
# Articles
# =============================================================================

class DBArticle(Base):
    """Stored article, unique per (source, external id)."""
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    external_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Core metadata
    title: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    content: Mapped[Optional[str]] = mapped_column(Text)
    author: Mapped[Optional[str]] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    source: Mapped["DBSource"] = relationship(back_populates="articles")
    category: Mapped["DBCategory"] = relationship(back_populates="articles")

    # Indexes
    __table_args__ = (
        UniqueConstraint("source_id", "external_id", name="uq_articles_source_external"),
        Index("ix_articles_source_category_published", "source_id", "category_id", "published_at"),
        Index("ix_articles_published_at", "published_at"),
        Index("ix_articles_author", "author"),
        Index("ix_articles_slug", "slug"),
    )


# =============================================================================
# Users
# =============================================================================

class DBUser(Base):
    """User account."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    preferences: Mapped[list["DBUserPreference"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    tokens: Mapped[list["DBAccessToken"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class DBUserPreference(Base):
    """
    A single preference row: exactly one of source, category or author.
    """
    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    source_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("sources.id", ondelete="CASCADE")
    )
    category_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE")
    )
    author_name: Mapped[Optional[str]] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    user: Mapped["DBUser"] = relationship(back_populates="preferences")
    source: Mapped[Optional["DBSource"]] = relationship()
    category: Mapped[Optional["DBCategory"]] = relationship()

    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN source_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN category_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN author_name IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name="ck_user_preferences_single_dimension",
        ),
        UniqueConstraint("user_id", "source_id", name="uq_user_preferences_source"),
        UniqueConstraint("user_id", "category_id", name="uq_user_preferences_category"),
        UniqueConstraint("user_id", "author_name", name="uq_user_preferences_author"),
        Index("ix_user_preferences_user", "user_id"),
    )


class DBAccessToken(Base):
    """Bearer token issued at login (stored as a SHA-256 digest)."""
    __tablename__ = "access_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    user: Mapped["DBUser"] = relationship(back_populates="tokens")


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = create_async_engine(
            database_url,
            echo=echo,
            future=True,
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self):
        """Drop all tables (use with caution!)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self):
        await self.engine.dispose()

    async def seed_reference_data(self) -> None:
        """Create the fixed categories and the known sources if missing."""
        async with self.async_session() as session:
            existing_categories = set(
                (await session.execute(select(DBCategory.slug))).scalars().all()
            )
            for category in CATEGORIES:
                if category.slug not in existing_categories:
                    session.add(DBCategory(name=category.name, slug=category.slug))

            existing_sources = set(
                (await session.execute(select(DBSource.slug))).scalars().all()
            )
            for source in SOURCES:
                if source.slug not in existing_sources:
                    session.add(
                        DBSource(
                            name=source.name,
                            slug=source.slug,
                            base_url=source.base_url,
                            category_mapping=dict(source.category_mapping),
                            is_active=True,
                        )
                    )

            await session.commit()

        logger.info(
            "Reference data seeded",
            categories=len(CATEGORIES),
            sources=len(SOURCES),
        )
