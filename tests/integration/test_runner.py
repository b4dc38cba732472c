"""
Integration tests for the runner sweep.
"""

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from invite_jobs.constants import JobStatus, JobType
from invite_jobs.db.models import Job
from invite_jobs.db.repository import JobRepository
from invite_jobs.errors import RetryableJobError, TerminalJobError
from invite_jobs.queue import JobQueue
from invite_jobs.types.job import JobContext, SweepResult
from invite_jobs.worker.dispatcher import Dispatcher
from invite_jobs.worker.main import Runner

T0 = datetime(2026, 1, 1, 9, 0, 0)


async def enqueue(
    session_maker: async_sessionmaker[AsyncSession],
    job_type: str = "iptv.sync",
    payload: Any = None,
    owner_id: str | None = "user-1",
    run_at: datetime = T0,
    max_attempts: int | None = None,
) -> UUID:
    async with session_maker() as session:
        return await JobQueue(session).enqueue(
            job_type,
            payload,
            owner_id=owner_id,
            run_at=run_at,
            max_attempts=max_attempts,
        )


async def load(session_maker: async_sessionmaker[AsyncSession], job_id: UUID) -> Job:
    async with session_maker() as session:
        return await JobRepository(session).get_job(job_id)


class TestRunnerSweep:
    """Tests for Runner.sweep outcomes."""

    @pytest.fixture
    def runner(self, handlers, session_factory) -> Runner:
        return Runner(dispatcher=handlers.build(), session_factory=session_factory)

    async def test_successful_job(self, runner: Runner, handlers, session_maker):
        job_id = await enqueue(session_maker, payload={"accountId": "acc-1"})

        result = await runner.sweep(now=T0)

        assert (result.processed, result.succeeded, result.retried, result.failed) == (1, 1, 0, 0)
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.SUCCEEDED
        assert job.attempts == 0
        assert job.locked_by is None
        assert job.last_attempt_at == T0

        job_type, context = handlers.calls[0]
        assert job_type == "iptv.sync"
        assert context.job_id == job_id
        assert context.owner_id == "user-1"
        assert context.payload.account_id == "acc-1"
        assert context.attempt == 1

    async def test_temporary_glitch_is_retried_then_succeeds(
        self, runner: Runner, handlers, session_maker
    ):
        job_id = await enqueue(session_maker, max_attempts=2)
        handlers.fail_next("iptv.sync", RetryableJobError("Network timeout"))

        first = await runner.sweep(now=T0)

        assert first.retried == 1
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.PENDING
        assert job.attempts == 1
        assert job.last_error == "Network timeout"
        assert job.next_run_at == T0 + timedelta(minutes=1)

        # Not due yet
        early = await runner.sweep(now=T0 + timedelta(seconds=30))
        assert early.processed == 0

        second = await runner.sweep(now=T0 + timedelta(minutes=1))

        assert second.succeeded == 1
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.SUCCEEDED
        assert job.attempts == 1
        assert job.last_error is None
        assert handlers.calls[1][1].attempt == 2
        assert handlers.calls[1][1].is_last_attempt is True

    async def test_retries_exhausted(self, runner: Runner, handlers, session_maker):
        job_id = await enqueue(session_maker, max_attempts=2)
        handlers.fail_next(
            "iptv.sync",
            RetryableJobError("Network timeout"),
            RetryableJobError("Network timeout again"),
        )

        await runner.sweep(now=T0)
        result = await runner.sweep(now=T0 + timedelta(minutes=1))

        assert result.failed == 1
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.FAILED
        assert job.attempts == 2
        assert job.last_error == "Network timeout again"

    async def test_validation_error_fails_immediately(
        self, runner: Runner, handlers, session_maker
    ):
        job_id = await enqueue(session_maker, max_attempts=5)
        handlers.fail_next("iptv.sync", TerminalJobError.validation_error("Missing owner"))

        result = await runner.sweep(now=T0)

        assert result.failed == 1
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.FAILED
        assert job.attempts == 1
        assert job.last_error == "VALIDATION_ERROR: Missing owner"

    async def test_untyped_error_with_terminal_prefix(
        self, runner: Runner, handlers, session_maker
    ):
        job_id = await enqueue(session_maker)
        handlers.fail_next("iptv.sync", RuntimeError("CONFIG_MISSING: no credentials"))

        await runner.sweep(now=T0)

        assert (await load(session_maker, job_id)).status == JobStatus.FAILED

    async def test_untyped_error_is_retried(self, runner: Runner, handlers, session_maker):
        job_id = await enqueue(session_maker)
        handlers.fail_next("iptv.sync", ValueError("unexpected"))

        result = await runner.sweep(now=T0)

        assert result.retried == 1
        assert (await load(session_maker, job_id)).last_error == "unexpected"

    async def test_unknown_job_type(self, runner: Runner, handlers, session_maker):
        job_id = await enqueue(session_maker, job_type="iptv.teleport")

        result = await runner.sweep(now=T0)

        assert result.failed == 1
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.FAILED
        assert job.last_error == "NOT_IMPLEMENTED: Unknown job type: iptv.teleport"
        assert handlers.calls == []

    async def test_future_job_is_not_run(self, runner: Runner, handlers, session_maker):
        job_id = await enqueue(session_maker, run_at=T0 + timedelta(hours=1))

        result = await runner.sweep(now=T0)

        assert result.processed == 0
        assert (await load(session_maker, job_id)).status == JobStatus.PENDING
        assert handlers.calls == []

    async def test_batch_size(self, runner: Runner, session_maker):
        for minute in range(3):
            await enqueue(session_maker, run_at=T0 - timedelta(minutes=minute))

        result = await runner.sweep(batch_size=2, now=T0)

        assert result.processed == 2
        remaining = await runner.sweep(now=T0)
        assert remaining.processed == 1

    async def test_zero_batch_size_is_clamped_up(self, handlers, session_factory):
        runner = Runner(dispatcher=handlers.build(), batch_size=0, session_factory=session_factory)

        assert runner.batch_size == 1

    async def test_aware_reference_time(self, runner: Runner, session_maker):
        aware_now = datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=1)))
        job_id = await enqueue(session_maker, run_at=aware_now - timedelta(minutes=1))

        result = await runner.sweep(now=aware_now)

        assert (result.processed, result.succeeded) == (1, 1)
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.SUCCEEDED
        assert job.last_attempt_at == T0
        assert job.last_attempt_at.tzinfo is None

    async def test_aware_utc_clock_time(self, runner: Runner, session_maker):
        now = datetime.now(timezone.utc)
        job_id = await enqueue(session_maker, run_at=now - timedelta(minutes=1))

        result = await runner.sweep(now=now)

        assert result.succeeded == 1
        assert (await load(session_maker, job_id)).status == JobStatus.SUCCEEDED

    async def test_malformed_stored_payload(self, runner: Runner, handlers, session_maker):
        async with session_maker() as session:
            repo = JobRepository(session)
            sync_job = await repo.insert_job("iptv.sync", "{oops", "user-1", T0, 3, T0)
            plan_job = await repo.insert_job("iptv.changePlan", "{oops", "user-1", T0, 3, T0)
            await session.commit()

        result = await runner.sweep(now=T0)

        assert (result.succeeded, result.failed) == (1, 1)
        assert handlers.calls[0][1].payload.model_extra == {"raw": "{oops"}
        assert (await load(session_maker, sync_job.id)).status == JobStatus.SUCCEEDED
        failed = await load(session_maker, plan_job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.last_error.startswith("VALIDATION_ERROR: ")

    async def test_explicit_runner_id(self, session_maker, session_factory):
        seen: list[tuple[JobStatus, str | None]] = []
        dispatcher = Dispatcher()

        @dispatcher.register(JobType.SYNC)
        async def handle_sync(context: JobContext) -> None:
            job = await load(session_maker, context.job_id)
            seen.append((job.status, job.locked_by))

        runner = Runner(dispatcher=dispatcher, session_factory=session_factory)
        await enqueue(session_maker)
        await enqueue(session_maker)

        await runner.sweep(now=T0, batch_size=1)
        await runner.sweep(runner_id="runner-7", now=T0)

        assert seen == [(JobStatus.RUNNING, "cron"), (JobStatus.RUNNING, "runner-7")]

    async def test_run_once(self, runner: Runner, session_maker):
        await enqueue(session_maker, run_at=datetime(2020, 1, 1))

        result = await runner.run_once()

        assert result.succeeded == 1


class TestRunnerConcurrency:
    """Tests for races between runners and owners."""

    async def test_stale_due_list_does_not_double_run(self, session_maker, session_factory):
        calls: list[UUID] = []
        nested: list[SweepResult] = []
        dispatcher = Dispatcher()
        other = Runner(dispatcher=dispatcher, runner_id="runner-b", session_factory=session_factory)

        @dispatcher.register(JobType.SYNC)
        async def handle_sync(context: JobContext) -> None:
            calls.append(context.job_id)
            if len(calls) == 1:
                # A second runner sweeps while the first one is mid-batch
                nested.append(await other.sweep(now=T0))

        first_id = await enqueue(session_maker, run_at=T0 - timedelta(minutes=1))
        second_id = await enqueue(session_maker, run_at=T0)
        runner = Runner(dispatcher=dispatcher, runner_id="runner-a", session_factory=session_factory)

        result = await runner.sweep(now=T0)

        assert calls == [first_id, second_id]
        assert (result.processed, result.succeeded, result.skipped) == (1, 1, 1)
        assert (nested[0].processed, nested[0].succeeded) == (1, 1)
        for job_id in (first_id, second_id):
            assert (await load(session_maker, job_id)).status == JobStatus.SUCCEEDED

    async def test_cancel_during_execution_wins(self, session_maker, session_factory):
        dispatcher = Dispatcher()

        @dispatcher.register(JobType.SYNC)
        async def handle_sync(context: JobContext) -> None:
            async with session_maker() as session:
                result = await JobQueue(session).cancel(context.job_id, "user-1")
            assert result.canceled is True

        job_id = await enqueue(session_maker)
        runner = Runner(dispatcher=dispatcher, session_factory=session_factory)

        result = await runner.sweep(now=T0)

        assert (result.processed, result.succeeded, result.failed) == (1, 0, 0)
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.CANCELED
        assert job.locked_by is None

    async def test_cancel_during_failing_execution_wins(self, session_maker, session_factory):
        dispatcher = Dispatcher()

        @dispatcher.register(JobType.SYNC)
        async def handle_sync(context: JobContext) -> None:
            async with session_maker() as session:
                await JobQueue(session).cancel(context.job_id, "user-1")
            raise RetryableJobError("panel down")

        job_id = await enqueue(session_maker)
        runner = Runner(dispatcher=dispatcher, session_factory=session_factory)

        result = await runner.sweep(now=T0)

        assert result.retried == 0
        job = await load(session_maker, job_id)
        assert job.status == JobStatus.CANCELED
        assert job.attempts == 0
