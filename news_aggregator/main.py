"""
Main FastAPI application for the News Aggregator.
"""
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from news_aggregator import __version__
from news_aggregator.api.routes import router
from news_aggregator.api.schemas import error
from news_aggregator.config import Settings, get_settings
from news_aggregator.core.cache import MemoryCache
from news_aggregator.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidRequestError,
)
from news_aggregator.core.logging import configure_logging
from news_aggregator.jobs.orchestrator import NewsFetchOrchestrator
from news_aggregator.models.database import Database
from news_aggregator.sources import SourceRegistry

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    settings: Settings = app.state.settings
    database: Database = app.state.database

    configure_logging(settings.log_level, json_logs=settings.environment != "development")

    logger.info("Initializing database", url=settings.database_url)
    await database.create_tables()
    await database.seed_reference_data()

    scheduler: Optional[AsyncIOScheduler] = None
    if settings.ingestion_schedule_enabled:
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            run_scheduled_fetch,
            CronTrigger(hour=settings.ingestion_cron_hour, minute=settings.ingestion_cron_minute),
            args=[app],
            id="news_fetch",
            name="News Fetch",
            replace_existing=True,
        )
        scheduler.start()
        logger.info(
            "Scheduler started",
            hour=settings.ingestion_cron_hour,
            minute=settings.ingestion_cron_minute,
        )

    yield

    logger.info("Shutting down")
    if scheduler:
        scheduler.shutdown()
    await database.dispose()


async def run_scheduled_fetch(app: FastAPI):
    """Fetch every category from every configured source."""
    settings: Settings = app.state.settings
    orchestrator = NewsFetchOrchestrator(
        app.state.database,
        settings,
        app.state.registry,
    )
    try:
        summaries = await orchestrator.fetch(
            max_retry=settings.ingestion_max_retry,
            timeout=settings.ingestion_timeout_seconds,
        )
        logger.info("Scheduled news fetch completed", batches=[s.as_dict() for s in summaries])
    except Exception as e:
        logger.error("Scheduled news fetch failed", error=str(e))


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc if p not in ("query", "body", "path", "header")]
    return ".".join(parts) or "request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        errors: dict[str, list[str]] = {}
        for item in exc.errors():
            errors.setdefault(_field_name(tuple(item.get("loc", ()))), []).append(item["msg"])
        return error("The given data was invalid.", errors, status.HTTP_422_UNPROCESSABLE_ENTITY)

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request: Request, exc: InvalidRequestError):
        errors = {exc.field or "request": [str(exc)]}
        return error(str(exc), errors, status.HTTP_422_UNPROCESSABLE_ENTITY)

    @app.exception_handler(AuthenticationError)
    async def authentication_handler(request: Request, exc: AuthenticationError):
        return error(str(exc) or "Unauthenticated", status_code=status.HTTP_401_UNAUTHORIZED)

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(request: Request, exc: ConfigurationError):
        logger.error("Configuration error", path=request.url.path, error=str(exc))
        return error(str(exc), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        database: Database to use (defaults to one built from settings)
    """
    settings = settings or get_settings()
    database = database or Database(settings.database_url, echo=settings.debug)
    cache = MemoryCache()

    app = FastAPI(
        title=settings.app_name,
        description="Aggregated news from The Guardian, NewsAPI and The New York Times.",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.cache = cache
    app.state.registry = SourceRegistry(database, settings, cache)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "news-aggregator",
            "version": __version__,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "news_aggregator.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
