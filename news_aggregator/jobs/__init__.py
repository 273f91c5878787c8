"""
Ingestion jobs - fetch jobs, batches and the orchestrator that runs them.
"""
from news_aggregator.jobs.batch import Batch, WorkQueue
from news_aggregator.jobs.fetch_articles import FetchArticlesJob, JobOutcome
from news_aggregator.jobs.orchestrator import BatchSummary, NewsFetchOrchestrator

__all__ = [
    "Batch",
    "WorkQueue",
    "FetchArticlesJob",
    "JobOutcome",
    "BatchSummary",
    "NewsFetchOrchestrator",
]
