"""
Batches and per-queue work lanes.

A Batch groups jobs under a name and a queue. The WorkQueue gives every
queue name its own lane (an asyncio.Queue drained by a fixed worker pool),
so a slow or rate-limited source never holds up another source's jobs.

Batch callbacks:
    then(batch)          all jobs finished and none failed
    catch(batch, exc)    first failed job
    finally_(batch)      batch finished, whatever the outcome

Without allow_failures() the first failure cancels the batch and its
remaining jobs are skipped.
"""
import asyncio
import inspect
import time
from typing import Any, Callable, Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)


class Job(Protocol):
    async def run(self) -> Any:
        ...


class Batch:
    """A named group of jobs dispatched to a single queue."""

    def __init__(self, name: str, jobs: list[Job], queue: str = "default"):
        self.name = name
        self.jobs = list(jobs)
        self.queue = queue

        self.allows_failures = False
        self.cancelled = False
        self.processed_jobs = 0
        self.failed_jobs = 0
        self.outcomes: list[Any] = []

        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None

        self._then: list[Callable] = []
        self._catch: list[Callable] = []
        self._finally: list[Callable] = []
        self._done = asyncio.Event()

    # -------------------------------------------------------------------------
    # Builder
    # -------------------------------------------------------------------------

    def allow_failures(self) -> "Batch":
        self.allows_failures = True
        return self

    def on_queue(self, queue: str) -> "Batch":
        self.queue = queue
        return self

    def then(self, callback: Callable) -> "Batch":
        self._then.append(callback)
        return self

    def catch(self, callback: Callable) -> "Batch":
        self._catch.append(callback)
        return self

    def finally_(self, callback: Callable) -> "Batch":
        self._finally.append(callback)
        return self

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def total_jobs(self) -> int:
        return len(self.jobs)

    @property
    def pending_jobs(self) -> int:
        return self.total_jobs - self.processed_jobs

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    @property
    def elapsed_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    async def wait(self) -> "Batch":
        await self._done.wait()
        return self

    # -------------------------------------------------------------------------
    # Called by the work queue
    # -------------------------------------------------------------------------

    def _start(self) -> None:
        self.started_at = time.monotonic()

    async def _record(self, outcome: Any, error: Optional[BaseException]) -> None:
        self.processed_jobs += 1
        if outcome is not None:
            self.outcomes.append(outcome)

        if error is not None:
            self.failed_jobs += 1
            if self.failed_jobs == 1:
                await self._invoke(self._catch, self, error)
            if not self.allows_failures:
                self.cancelled = True

        if self.pending_jobs == 0:
            await self._complete()

    async def _skip(self) -> None:
        self.processed_jobs += 1
        if self.pending_jobs == 0:
            await self._complete()

    async def _complete(self) -> None:
        self.finished_at = time.monotonic()
        if self.failed_jobs == 0 and not self.cancelled:
            await self._invoke(self._then, self)
        await self._invoke(self._finally, self)
        self._done.set()

    async def _invoke(self, callbacks: list[Callable], *args: Any) -> None:
        for callback in callbacks:
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Batch callback failed", batch=self.name)


def _job_error(outcome: Any) -> Optional[BaseException]:
    """Jobs report failure by returning an outcome with succeeded=False."""
    if getattr(outcome, "succeeded", True):
        return None
    error = getattr(outcome, "exception", None)
    if error is None:
        error = RuntimeError(getattr(outcome, "error", None) or "Job failed")
    return error


class WorkQueue:
    """
    Lane-per-queue asyncio work queue.

    Usage:
        queue = WorkQueue(workers_per_lane=2)
        queue.dispatch(batch)
        await queue.wait()
        await queue.close()
    """

    def __init__(self, workers_per_lane: int = 2):
        self.workers_per_lane = max(1, workers_per_lane)
        self._lanes: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, list[asyncio.Task]] = {}
        self._batches: list[Batch] = []
        self._completions: set[asyncio.Task] = set()

    @property
    def lanes(self) -> list[str]:
        return list(self._lanes)

    def dispatch(self, batch: Batch) -> Batch:
        lane = self._lane(batch.queue)
        batch._start()
        self._batches.append(batch)

        logger.debug(
            "Batch dispatched",
            batch=batch.name,
            queue=batch.queue,
            total_jobs=batch.total_jobs,
        )

        if not batch.jobs:
            task = asyncio.get_running_loop().create_task(batch._complete())
            self._completions.add(task)
            task.add_done_callback(self._completions.discard)
        for job in batch.jobs:
            lane.put_nowait((batch, job))
        return batch

    async def wait(self) -> list[Batch]:
        """Wait until every dispatched batch has finished."""
        await asyncio.gather(*(batch.wait() for batch in self._batches))
        return list(self._batches)

    async def close(self) -> None:
        workers = [task for tasks in self._workers.values() for task in tasks]
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._lanes.clear()

    def _lane(self, name: str) -> asyncio.Queue:
        if name not in self._lanes:
            queue: asyncio.Queue = asyncio.Queue()
            self._lanes[name] = queue
            self._workers[name] = [
                asyncio.create_task(self._worker(name, queue), name=f"{name}-{i}")
                for i in range(self.workers_per_lane)
            ]
        return self._lanes[name]

    async def _worker(self, name: str, queue: asyncio.Queue) -> None:
        while True:
            batch, job = await queue.get()
            try:
                if batch.cancelled:
                    await batch._skip()
                    continue

                try:
                    outcome = await job.run()
                    error = _job_error(outcome)
                except Exception as e:
                    logger.error("Job raised", queue=name, batch=batch.name, error=str(e))
                    outcome, error = None, e

                await batch._record(outcome, error)
            finally:
                queue.task_done()
