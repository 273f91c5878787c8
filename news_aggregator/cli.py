"""
CLI for news ingestion.

Usage:
    # Fetch every category from every configured source
    news-fetch

    # Restrict sources / categories (repeatable)
    news-fetch --source the-guardian --source new-york-times --category technology

    # Tune retries and per-attempt timeout
    news-fetch --max-retry 5 --timeout 120

    # Create tables and seed categories and sources
    news-fetch seed
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

import structlog

from news_aggregator.config import get_settings
from news_aggregator.core.cache import MemoryCache
from news_aggregator.core.exceptions import ConfigurationError
from news_aggregator.core.logging import configure_logging
from news_aggregator.jobs.orchestrator import NewsFetchOrchestrator
from news_aggregator.models.database import Database
from news_aggregator.sources import SourceRegistry

logger = structlog.get_logger(__name__)

COMMANDS = ("fetch", "seed")


async def cmd_fetch(args, database: Database) -> int:
    """Fetch news from configured sources."""
    settings = get_settings()
    registry = SourceRegistry(database, settings, MemoryCache())
    orchestrator = NewsFetchOrchestrator(database, settings, registry)

    try:
        summaries = await orchestrator.fetch(
            sources=args.source,
            categories=args.category,
            max_retry=args.max_retry,
            timeout=args.timeout,
        )
    except ConfigurationError as e:
        logger.error("News fetch aborted", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\n" + "=" * 60)
    print("NEWS FETCH RESULTS")
    print("=" * 60)

    failed = 0
    for summary in summaries:
        print(
            f"  {summary.name}: {summary.total_jobs} jobs, "
            f"{summary.failed_jobs} failed, {summary.elapsed_seconds:.2f}s"
        )
        failed += summary.failed_jobs

    print("-" * 60)
    print(f"Total batches: {len(summaries)}")

    return 0 if failed == 0 else 2


async def cmd_seed(args, database: Database) -> int:
    """Create tables and reference data."""
    await database.create_tables()
    await database.seed_reference_data()
    print("Database tables created and reference data seeded")
    return 0


async def run(args) -> int:
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        if args.command == "seed":
            return await cmd_seed(args, database)
        return await cmd_fetch(args, database)
    finally:
        await database.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="news-fetch",
        description="News Aggregator - fetch news from configured sources",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch news (default)")
    fetch_parser.add_argument(
        "--source", "-s",
        action="append",
        default=[],
        help="Specific source to fetch from (repeatable)"
    )
    fetch_parser.add_argument(
        "--category", "-c",
        action="append",
        default=[],
        help="Specific category to fetch (repeatable)"
    )
    fetch_parser.add_argument(
        "--max-retry",
        type=int,
        default=3,
        help="Maximum attempts per source/category job (default: 3)"
    )
    fetch_parser.add_argument(
        "--timeout",
        type=int,
        default=300,
        help="Timeout for one fetch attempt in seconds (default: 300)"
    )

    # Seed command
    subparsers.add_parser("seed", help="Create tables and seed reference data")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    # "fetch" is the default command
    if not argv or argv[0] not in (*COMMANDS, "-h", "--help"):
        argv = ["fetch", *argv]

    args = build_parser().parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level, json_logs=settings.environment != "development")

    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
