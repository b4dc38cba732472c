"""
Stale-lock reaper for recovering abandoned jobs.

A runner that dies between locking a job and recording its outcome leaves
the job running forever. The reaper runs periodically, finds running jobs
whose lock is older than the stale timeout and returns them to pending so
another sweep picks them up. Attempts are not incremented.
"""

import asyncio
import logging
import signal
from datetime import datetime, timedelta

from invite_jobs.config import get_settings
from invite_jobs.db import SessionFactory, close_db, get_session_context, init_db
from invite_jobs.db.repository import JobRepository
from invite_jobs.observability.logging import setup_logging
from invite_jobs.observability.metrics import get_metrics
from invite_jobs.policy import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


class Reaper:
    """
    Reaper that recovers jobs with stale locks.

    Runs periodically to:
    1. Find jobs in RUNNING status locked before now - stale timeout
    2. Return them to PENDING, due immediately
    3. Record metrics for monitoring
    """

    def __init__(
        self,
        interval_seconds: int | None = None,
        stale_after_seconds: int | None = None,
        session_factory: SessionFactory | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            interval_seconds: Seconds between reaper runs.
            stale_after_seconds: Age at which a lock counts as abandoned.
            session_factory: Transactional session scope factory.
        """
        settings = get_settings()
        self.interval = interval_seconds or settings.reaper_interval_seconds
        self.stale_after = timedelta(
            seconds=stale_after_seconds or settings.stale_lock_timeout_seconds
        )
        self._session_factory = session_factory or get_session_context
        self._running = False
        self._stop_event = asyncio.Event()
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Start the reaper loop."""
        logger.info(f"Reaper starting with interval {self.interval}s")
        self._running = True
        self._stop_event.clear()

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Reaper stopped")

    async def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._running = False
        self._stop_event.set()

    async def run_once(self, now: datetime | None = None) -> int:
        """
        Run the reaper once (for testing or cron-style execution).

        Args:
            now: Reference time. Defaults to the current UTC time.

        Returns:
            Number of jobs reclaimed.
        """
        now = to_naive_utc(now) if now is not None else utcnow()
        async with self._session_factory() as session:
            count = await JobRepository(session).reclaim_stale_locks(
                stale_before=now - self.stale_after,
                now=now,
            )

        if count > 0:
            logger.warning(f"Reclaimed {count} jobs with stale locks")
            self._metrics.record_stale_locks_reclaimed(count)
        return count


async def run_async() -> None:
    """Run the reaper asynchronously."""
    setup_logging()
    await init_db()

    reaper = Reaper()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(reaper.stop())
        )

    try:
        await reaper.start()
    finally:
        await close_db()


def run() -> None:
    """Run the reaper."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
