"""
Job repository for database operations.
Implements the record store, the lock protocol and outcome recording.
"""

import logging
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import ColumnElement, String, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from invite_jobs.constants import (
    LOCK_EXPIRED_PREFIX,
    JobStatus,
    LockRefusal,
)
from invite_jobs.db.models import Job
from invite_jobs.policy import compute_backoff, to_naive_utc
from invite_jobs.types.job import LockResult

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for job database operations.

    Every state transition is a conditional UPDATE: it only applies while
    the row still matches the state the caller observed. This is what keeps
    two runners from executing the same job, and what keeps a late outcome
    from overwriting a cancel.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def insert_job(
        self,
        job_type: str,
        payload: str | None,
        owner_id: str | None,
        next_run_at: datetime,
        max_attempts: int,
        now: datetime,
    ) -> Job:
        """
        Insert a new pending job.

        Args:
            job_type: Handler type string, stored unchecked.
            payload: Serialized payload or None.
            owner_id: Requesting principal, if any.
            next_run_at: Earliest time the job may run.
            max_attempts: Attempt ceiling.
            now: Creation timestamp.

        Returns:
            The created Job.
        """
        job = Job(
            job_type=job_type,
            payload=payload,
            owner_id=owner_id,
            status=JobStatus.PENDING,
            attempts=0,
            max_attempts=max_attempts,
            next_run_at=next_run_at,
            created_at=now,
            updated_at=now,
        )
        self._session.add(job)
        await self._session.flush()

        logger.info(
            "Created new job",
            extra={"job_id": str(job.id), "job_type": job_type, "owner_id": owner_id}
        )
        return job

    async def get_job(self, job_id: UUID, fresh: bool = False) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job UUID.
            fresh: Bypass the session identity map and re-read the row.

        Returns:
            The Job or None if not found.
        """
        stmt = select(Job).where(Job.id == job_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_due_jobs(self, now: datetime, batch_size: int) -> Sequence[Job]:
        """
        Get pending jobs whose next_run_at has arrived, earliest first.

        Args:
            now: The reference time.
            batch_size: Maximum number of jobs to return.

        Returns:
            Due jobs ordered by next_run_at ascending.
        """
        stmt = (
            select(Job)
            .where(Job.status == JobStatus.PENDING, Job.next_run_at <= now)
            .order_by(Job.next_run_at.asc(), Job.created_at.asc())
            .limit(batch_size)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_jobs_for_owner(self, owner_id: str, limit: int) -> Sequence[Job]:
        """
        List an owner's jobs, most recent first.

        Args:
            owner_id: The owning principal.
            limit: Maximum number of jobs to return.

        Returns:
            Jobs ordered by created_at descending.
        """
        stmt = (
            select(Job)
            .where(Job.owner_id == owner_id)
            .order_by(Job.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def patch_job(
        self,
        job_id: UUID,
        *criteria: ColumnElement[bool],
        expected: dict[str, Any] | None = None,
        **values: Any,
    ) -> Job | None:
        """
        Apply a field-level update only if the row still matches.

        Args:
            job_id: The job UUID.
            *criteria: Extra SQL conditions the row must satisfy.
            expected: Column values the row must still hold.
            **values: Columns to set.

        Returns:
            The updated Job, or None if no row matched.
        """
        conditions = [Job.id == job_id, *criteria]
        for column, value in (expected or {}).items():
            conditions.append(getattr(Job, column) == value)

        stmt = (
            update(Job)
            .where(*conditions)
            .values(**values)
            .returning(Job)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_job(self, job_id: UUID, runner_id: str, now: datetime) -> LockResult:
        """
        Move a due pending job to running under a runner's name.

        The checks are repeated by the conditional UPDATE, so a concurrent
        runner that got there first makes this call refuse instead of
        double-locking.

        Args:
            job_id: The job UUID.
            runner_id: The runner claiming the job.
            now: The runner's current time.

        Returns:
            LockResult with the refusal reason if the lock was not taken.
        """
        now = to_naive_utc(now)
        job = await self.get_job(job_id, fresh=True)
        reason = _refusal_reason(job, now)
        if reason is not None:
            return LockResult(locked=False, reason=reason)

        locked = await self.patch_job(
            job_id,
            Job.next_run_at <= now,
            expected={"status": JobStatus.PENDING},
            status=JobStatus.RUNNING,
            locked_by=runner_id,
            locked_at=now,
            last_attempt_at=now,
            updated_at=now,
        )
        if locked is None:
            # Lost the race between the read and the write
            job = await self.get_job(job_id, fresh=True)
            reason = _refusal_reason(job, now) or LockRefusal.NOT_PENDING
            return LockResult(locked=False, reason=reason)

        logger.info(
            "Locked job",
            extra={"job_id": str(job_id), "runner_id": runner_id}
        )
        return LockResult(locked=True)

    async def mark_succeeded(
        self,
        job_id: UUID,
        runner_id: str,
        now: datetime,
    ) -> Job | None:
        """
        Record a successful attempt.

        Only applies while the job is still running under this runner.

        Returns:
            Updated Job or None if the job was canceled or reclaimed meanwhile.
        """
        job = await self.patch_job(
            job_id,
            expected={"status": JobStatus.RUNNING, "locked_by": runner_id},
            status=JobStatus.SUCCEEDED,
            last_error=None,
            locked_by=None,
            locked_at=None,
            updated_at=now,
        )

        if job is None:
            logger.warning(
                "Job no longer held by runner, success not recorded",
                extra={"job_id": str(job_id), "runner_id": runner_id}
            )
        else:
            logger.info(
                "Job completed successfully",
                extra={"job_id": str(job_id)}
            )
        return job

    async def mark_failed_or_retry(
        self,
        job_id: UUID,
        runner_id: str,
        error: str,
        terminal: bool,
        now: datetime,
    ) -> Job | None:
        """
        Record a failed attempt. Either reschedule with backoff or fail.

        The job fails permanently when the error is terminal or when this
        attempt reaches max_attempts.

        Args:
            job_id: The job UUID.
            runner_id: The runner that held the lock.
            error: Error message, stored as last_error.
            terminal: Whether the error is non-retryable.
            now: Reference time for the backoff.

        Returns:
            Updated Job or None if the job was canceled or reclaimed meanwhile.
        """
        job = await self.get_job(job_id, fresh=True)
        if job is None or job.status != JobStatus.RUNNING or job.locked_by != runner_id:
            logger.warning(
                "Job no longer held by runner, failure not recorded",
                extra={"job_id": str(job_id), "runner_id": runner_id, "error": error}
            )
            return None

        attempts = job.attempts + 1
        values: dict[str, Any] = {
            "attempts": attempts,
            "last_error": error,
            "locked_by": None,
            "locked_at": None,
            "updated_at": now,
        }

        if terminal or attempts >= job.max_attempts:
            values["status"] = JobStatus.FAILED
            logger.warning(
                f"Job failed after {attempts} attempts",
                extra={"job_id": str(job_id), "error": error, "terminal": terminal}
            )
        else:
            values["status"] = JobStatus.PENDING
            values["next_run_at"] = now + compute_backoff(attempts)
            logger.info(
                "Job queued for retry",
                extra={
                    "job_id": str(job_id),
                    "attempt": attempts,
                    "next_run_at": values["next_run_at"].isoformat(),
                }
            )

        return await self.patch_job(
            job_id,
            expected={
                "status": JobStatus.RUNNING,
                "locked_by": runner_id,
                "attempts": job.attempts,
            },
            **values,
        )

    async def cancel_job(self, job_id: UUID, now: datetime) -> Job | None:
        """
        Mark a pending or running job as canceled.

        Returns:
            Updated Job or None if the job already finished.
        """
        job = await self.patch_job(
            job_id,
            Job.status.in_([JobStatus.PENDING, JobStatus.RUNNING, JobStatus.CANCELED]),
            status=JobStatus.CANCELED,
            locked_by=None,
            locked_at=None,
            updated_at=now,
        )

        if job:
            logger.info(
                "Job canceled",
                extra={"job_id": str(job_id)}
            )
        return job

    async def reclaim_stale_locks(self, stale_before: datetime, now: datetime) -> int:
        """
        Return running jobs with abandoned locks to pending.

        This is called by the reaper to handle runners that crashed between
        locking a job and recording its outcome.

        Args:
            stale_before: Locks taken before this time are considered abandoned.
            now: Reference time, used as the new next_run_at.

        Returns:
            Number of reclaimed jobs.
        """
        stale_before = to_naive_utc(stale_before)
        now = to_naive_utc(now)
        stmt = (
            update(Job)
            .where(
                Job.status == JobStatus.RUNNING,
                Job.locked_at < stale_before,
            )
            .values(
                status=JobStatus.PENDING,
                next_run_at=now,
                # SET expressions read the pre-update locked_by
                last_error=(
                    literal(f"{LOCK_EXPIRED_PREFIX}: runner ", String)
                    + func.coalesce(Job.locked_by, "unknown")
                    + literal(" did not report an outcome", String)
                ),
                locked_by=None,
                locked_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        result = await self._session.execute(stmt)
        count = result.rowcount

        if count > 0:
            logger.info(
                f"Reclaimed {count} jobs with stale locks"
            )

        return count

    async def get_job_stats(
        self,
        owner_id: str | None = None,
    ) -> dict[str, int]:
        """
        Get job counts by status.

        Args:
            owner_id: Optional owner filter.

        Returns:
            Dictionary of status -> count.
        """
        stmt = (
            select(Job.status, func.count())
            .group_by(Job.status)
        )
        if owner_id is not None:
            stmt = stmt.where(Job.owner_id == owner_id)

        result = await self._session.execute(stmt)
        return {status.value: count for status, count in result.all()}


def _refusal_reason(job: Job | None, now: datetime) -> LockRefusal | None:
    """Why a job cannot be locked right now, or None if it can."""
    if job is None:
        return LockRefusal.MISSING
    if job.status != JobStatus.PENDING:
        return LockRefusal.NOT_PENDING
    if job.next_run_at > now:
        return LockRefusal.NOT_DUE
    return None
