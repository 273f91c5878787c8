"""
Tests for batches and per-queue work lanes.
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

from news_aggregator.jobs.batch import Batch, WorkQueue


class FakeJob:
    def __init__(self, succeed: bool = True, gate: asyncio.Event = None, on_run=None):
        self.succeed = succeed
        self.gate = gate
        self.on_run = on_run
        self.ran = False

    async def run(self):
        self.ran = True
        if self.on_run:
            self.on_run()
        if self.gate is not None:
            await self.gate.wait()
        if self.succeed:
            return SimpleNamespace(succeeded=True)
        return SimpleNamespace(succeeded=False, error="boom", exception=RuntimeError("boom"))


async def run_batches(*batches: Batch, workers_per_lane: int = 2) -> None:
    queue = WorkQueue(workers_per_lane=workers_per_lane)
    try:
        for batch in batches:
            queue.dispatch(batch)
        await asyncio.wait_for(queue.wait(), timeout=5)
    finally:
        await queue.close()


class TestBatch:
    async def test_then_and_finally_run_when_all_jobs_succeed(self):
        then, catch, final = MagicMock(), MagicMock(), MagicMock()
        batch = Batch("ok", [FakeJob(), FakeJob()], "news-a").then(then).catch(catch).finally_(final)

        await run_batches(batch)

        assert batch.total_jobs == 2
        assert batch.failed_jobs == 0
        then.assert_called_once_with(batch)
        catch.assert_not_called()
        final.assert_called_once_with(batch)

    async def test_allow_failures_runs_every_job(self):
        jobs = [FakeJob(), FakeJob(succeed=False), FakeJob(), FakeJob(succeed=False)]
        then, catch, final = MagicMock(), MagicMock(), MagicMock()
        batch = (
            Batch("partial", jobs, "news-a")
            .allow_failures()
            .then(then)
            .catch(catch)
            .finally_(final)
        )

        await run_batches(batch)

        assert all(job.ran for job in jobs)
        assert batch.failed_jobs == 2
        then.assert_not_called()
        catch.assert_called_once()
        assert isinstance(catch.call_args.args[1], RuntimeError)
        final.assert_called_once_with(batch)

    async def test_without_allow_failures_remaining_jobs_are_skipped(self):
        jobs = [FakeJob(succeed=False), FakeJob(), FakeJob()]
        batch = Batch("strict", jobs, "news-a")

        await run_batches(batch, workers_per_lane=1)

        assert batch.cancelled
        assert batch.failed_jobs == 1
        assert not jobs[1].ran
        assert not jobs[2].ran
        assert batch.finished

    async def test_async_callbacks_are_awaited(self):
        seen = []

        async def record(batch):
            seen.append(batch.name)

        batch = Batch("async", [FakeJob()], "news-a").finally_(record)
        await run_batches(batch)

        assert seen == ["async"]

    async def test_empty_batch_completes(self):
        final = MagicMock()
        batch = Batch("empty", [], "news-a").finally_(final)

        await run_batches(batch)

        final.assert_called_once_with(batch)

    async def test_elapsed_time_is_recorded(self):
        batch = Batch("timed", [FakeJob()], "news-a")
        await run_batches(batch)
        assert batch.elapsed_seconds >= 0


class TestWorkQueue:
    async def test_each_queue_gets_its_own_lane(self):
        queue = WorkQueue()
        queue.dispatch(Batch("a", [FakeJob()], "news-a"))
        queue.dispatch(Batch("b", [FakeJob()], "news-b"))
        try:
            await queue.wait()
            assert sorted(queue.lanes) == ["news-a", "news-b"]
        finally:
            await queue.close()

    async def test_blocked_lane_does_not_block_other_lanes(self):
        gate = asyncio.Event()
        blocked = Batch("slow", [FakeJob(gate=gate)], "news-slow")
        opener = Batch("fast", [FakeJob(on_run=gate.set)], "news-fast")

        # One worker per lane: only independent lanes let "fast" open the gate
        await run_batches(blocked, opener, workers_per_lane=1)

        assert blocked.failed_jobs == 0
        assert opener.failed_jobs == 0

    async def test_jobs_that_raise_count_as_failed(self):
        class Exploding:
            async def run(self):
                raise ValueError("unexpected")

        batch = Batch("explode", [Exploding(), FakeJob()], "news-a").allow_failures()
        await run_batches(batch)

        assert batch.failed_jobs == 1
        assert batch.processed_jobs == 2

    async def test_empty_batch_completion_is_tracked_until_done(self):
        queue = WorkQueue()
        batch = queue.dispatch(Batch("empty", [], "news-a"))

        pending = list(queue._completions)
        assert len(pending) == 1
        await asyncio.wait_for(asyncio.gather(*pending), timeout=5)

        assert batch.finished
        assert not queue._completions
        await queue.close()
