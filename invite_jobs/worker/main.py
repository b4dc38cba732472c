"""
Runner process for executing jobs.

The runner sweeps the jobs table for due work, locks each job, hands it
to the dispatcher and records the outcome. Jobs within a sweep run one
after another; concurrency comes from running several runners, which the
lock protocol keeps from executing the same job twice.
"""

import asyncio
import logging
import signal
import time
from datetime import datetime

from invite_jobs.config import get_settings
from invite_jobs.constants import (
    SPAN_DISPATCH_JOB,
    SPAN_LOCK_JOB,
    SPAN_RECORD_OUTCOME,
    SPAN_SWEEP,
    JobStatus,
)
from invite_jobs.db import SessionFactory, close_db, get_session_context, init_db
from invite_jobs.db.models import Job
from invite_jobs.db.repository import JobRepository
from invite_jobs.observability.logging import bind_context, clear_context, setup_logging
from invite_jobs.observability.metrics import get_metrics
from invite_jobs.observability.tracing import get_tracer
from invite_jobs.policy import classify_failure, clamp_batch_size, to_naive_utc, utcnow
from invite_jobs.types.job import SweepResult
from invite_jobs.types.payloads import decode_payload
from invite_jobs.worker.dispatcher import Dispatcher
from invite_jobs.worker.handlers import build_default_dispatcher

logger = logging.getLogger(__name__)


class Runner:
    """
    Job runner that sweeps for due jobs and executes them.

    Features:
    - Conditional lock acquisition, safe with concurrent runners
    - Outcome writes that never overwrite a cancel or a reclaim
    - Exponential backoff for retryable failures
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        runner_id: str | None = None,
        batch_size: int | None = None,
        interval: float | None = None,
        session_factory: SessionFactory | None = None,
    ):
        """
        Initialize the runner.

        Args:
            dispatcher: Handler registry. Defaults to the panel handlers.
            runner_id: Name written to locked_by. Defaults to settings.
            batch_size: Jobs per sweep, clamped to [1, 50].
            interval: Seconds between sweeps in the long-running loop.
            session_factory: Transactional session scope factory.
        """
        settings = get_settings()

        self.dispatcher = dispatcher or build_default_dispatcher(settings)
        self.runner_id = runner_id or settings.runner_id
        self.batch_size = clamp_batch_size(
            batch_size if batch_size is not None else settings.runner_batch_size
        )
        self.interval = interval or settings.runner_interval_seconds

        self._session_factory = session_factory or get_session_context
        self._running = False
        self._stop_event = asyncio.Event()
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Start the runner loop."""
        logger.info(
            "Runner starting",
            extra={"runner_id": self.runner_id, "batch_size": self.batch_size}
        )

        self._running = True
        self._stop_event.clear()

        while self._running:
            try:
                result = await self.sweep()
                if result.processed or result.skipped:
                    logger.info(
                        "Sweep finished",
                        extra={
                            "runner_id": self.runner_id,
                            "processed": result.processed,
                            "succeeded": result.succeeded,
                            "retried": result.retried,
                            "failed": result.failed,
                            "skipped": result.skipped,
                        }
                    )
            except Exception as e:
                logger.exception(
                    f"Error in runner loop: {e}",
                    extra={"runner_id": self.runner_id}
                )

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Runner stopped", extra={"runner_id": self.runner_id})

    async def stop(self) -> None:
        """Stop the runner after the current sweep."""
        logger.info("Runner stopping", extra={"runner_id": self.runner_id})
        self._running = False
        self._stop_event.set()

    async def run_once(self) -> SweepResult:
        """Run a single sweep, for externally scheduled triggers."""
        return await self.sweep()

    async def sweep(
        self,
        runner_id: str | None = None,
        batch_size: int | None = None,
        now: datetime | None = None,
    ) -> SweepResult:
        """
        Process the jobs due at `now`.

        Args:
            runner_id: Overrides the runner's name for this sweep.
            batch_size: Overrides the batch size, clamped to [1, 50].
            now: Reference time. When given it is also used for the
                outcome writes, otherwise the clock is read per job.

        Returns:
            SweepResult with per-outcome counts.
        """
        runner_id = runner_id or self.runner_id
        size = clamp_batch_size(batch_size if batch_size is not None else self.batch_size)
        if now is not None:
            now = to_naive_utc(now)
        sweep_now = now or utcnow()
        result = SweepResult()

        bind_context(runner_id=runner_id)
        try:
            with get_tracer().start_as_current_span(SPAN_SWEEP) as span:
                span.set_attribute("runner_id", runner_id)
                span.set_attribute("batch_size", size)

                async with self._session_factory() as session:
                    jobs = await JobRepository(session).get_due_jobs(sweep_now, size)

                span.set_attribute("due_jobs", len(jobs))

                for job in jobs:
                    try:
                        await self._process_job(job, runner_id, sweep_now, now, result)
                    except Exception as e:
                        # The job stays locked until the reaper reclaims it
                        logger.exception(
                            f"Error processing job: {e}",
                            extra={"job_id": str(job.id), "runner_id": runner_id}
                        )
        finally:
            clear_context()

        return result

    async def _process_job(
        self,
        job: Job,
        runner_id: str,
        lock_now: datetime,
        now: datetime | None,
        result: SweepResult,
    ) -> None:
        """
        Lock, execute and record a single job.

        Args:
            job: The due job as read at the start of the sweep.
            runner_id: The runner claiming the job.
            lock_now: Reference time for the lock.
            now: Explicit outcome time, if the caller passed one.
            result: Sweep counters to update.
        """
        tracer = get_tracer()

        with tracer.start_as_current_span(SPAN_LOCK_JOB) as span:
            span.set_attribute("job_id", str(job.id))
            async with self._session_factory() as session:
                lock = await JobRepository(session).lock_job(job.id, runner_id, lock_now)

        if not lock.locked:
            result.skipped += 1
            self._metrics.record_lock_refused(str(lock.reason))
            logger.debug(
                "Lock refused",
                extra={"job_id": str(job.id), "reason": str(lock.reason)}
            )
            return

        result.processed += 1
        self._metrics.record_lock_acquired(runner_id)

        attempt = job.attempts + 1
        logger.info(
            "Executing job",
            extra={
                "job_id": str(job.id),
                "job_type": job.job_type,
                "owner_id": job.owner_id,
                "attempt": attempt,
            }
        )

        start_time = time.monotonic()
        error: str | None = None
        terminal = False

        with tracer.start_as_current_span(SPAN_DISPATCH_JOB) as span:
            span.set_attribute("job_id", str(job.id))
            span.set_attribute("job_type", job.job_type)
            span.set_attribute("attempt", attempt)
            try:
                await self.dispatcher.dispatch(
                    job.job_type,
                    decode_payload(job.payload),
                    job.owner_id,
                    job_id=job.id,
                    attempt=attempt,
                    max_attempts=job.max_attempts,
                )
            except Exception as e:
                error, terminal = classify_failure(e)
                span.record_exception(e)
                span.set_attribute("terminal", terminal)

        duration = time.monotonic() - start_time
        outcome_now = now or utcnow()

        with tracer.start_as_current_span(SPAN_RECORD_OUTCOME):
            async with self._session_factory() as session:
                repo = JobRepository(session)
                if error is None:
                    updated = await repo.mark_succeeded(job.id, runner_id, outcome_now)
                else:
                    updated = await repo.mark_failed_or_retry(
                        job.id, runner_id, error, terminal, outcome_now
                    )

        if updated is None:
            outcome = "superseded"
        elif updated.status == JobStatus.SUCCEEDED:
            outcome = "succeeded"
            result.succeeded += 1
        elif updated.status == JobStatus.PENDING:
            outcome = "retried"
            result.retried += 1
        else:
            outcome = "failed"
            result.failed += 1

        self._metrics.record_job_outcome(job.job_type, outcome, duration)


async def run_async() -> None:
    """Run the runner asynchronously."""
    setup_logging()
    await init_db()

    runner = Runner()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(runner.stop())
        )

    try:
        await runner.start()
    finally:
        await close_db()


def run() -> None:
    """Run the runner."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
