"""
Client-facing job queue.

JobQueue is what the rest of the application uses to submit and manage
jobs. It validates payloads of known job types before they are stored, so
a malformed request is rejected at the door instead of failing later in
a runner.
"""

import logging
from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from invite_jobs.config import Settings, get_settings
from invite_jobs.constants import (
    ALREADY_FINISHED,
    DEFAULT_LIST_LIMIT,
    MAX_LIST_LIMIT,
    SPAN_ENQUEUE_JOB,
    JobType,
)
from invite_jobs.db.models import Job
from invite_jobs.db.repository import JobRepository
from invite_jobs.errors import JobNotFoundError, JobOwnershipError, PayloadValidationError
from invite_jobs.observability.metrics import get_metrics
from invite_jobs.observability.tracing import get_tracer
from invite_jobs.policy import to_naive_utc, utcnow
from invite_jobs.types.job import CancelResult
from invite_jobs.types.payloads import encode_payload, parse_payload

logger = logging.getLogger(__name__)


class JobQueue:
    """Client entry point for submitting and managing jobs."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        """
        Initialize the queue.

        Args:
            session: The async database session.
            settings: Application settings. Defaults to the cached settings.
        """
        self._session = session
        self._repo = JobRepository(session)
        self._settings = settings or get_settings()
        self._metrics = get_metrics()

    async def enqueue(
        self,
        job_type: str,
        payload: Any = None,
        owner_id: str | None = None,
        run_at: datetime | None = None,
        max_attempts: int | None = None,
    ) -> UUID:
        """
        Store a new pending job.

        Unknown job types are stored as-is; they fail when a runner picks
        them up.

        Args:
            job_type: Handler type string.
            payload: JSON-serializable payload.
            owner_id: Requesting principal, if any.
            run_at: Earliest execution time. Defaults to now.
            max_attempts: Attempt ceiling. Defaults to settings.

        Returns:
            The new job's id.

        Raises:
            PayloadValidationError: If the payload does not fit a known type.
            ValueError: If max_attempts is below 1.
        """
        if max_attempts is None:
            max_attempts = self._settings.default_max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        if job_type in JobType.__members__.values():
            try:
                parse_payload(JobType(job_type), payload)
            except ValidationError as e:
                raise PayloadValidationError(
                    job_type, f"{e.error_count()} error(s), first: {e.errors()[0]['msg']}"
                ) from e

        now = utcnow()
        with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
            span.set_attribute("job_type", job_type)

            job = await self._repo.insert_job(
                job_type=job_type,
                payload=encode_payload(payload),
                owner_id=owner_id,
                next_run_at=to_naive_utc(run_at) if run_at else now,
                max_attempts=max_attempts,
                now=now,
            )
            await self._session.commit()

            span.set_attribute("job_id", str(job.id))

        self._metrics.record_job_enqueued(job_type)
        return job.id

    async def get_by_id(self, job_id: UUID) -> Job | None:
        """Get a job by id."""
        return await self._repo.get_job(job_id)

    async def list_by_owner(
        self,
        owner_id: str,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> Sequence[Job]:
        """List an owner's jobs, most recent first, at most 100."""
        limit = min(max(limit, 1), MAX_LIST_LIMIT)
        return await self._repo.list_jobs_for_owner(owner_id, limit)

    async def cancel(self, job_id: UUID, requester_id: str) -> CancelResult:
        """
        Cancel a pending or running job on behalf of its owner.

        A running job's handler is not interrupted; its outcome is
        discarded when the runner tries to record it.

        Args:
            job_id: The job to cancel.
            requester_id: The principal asking for the cancel.

        Returns:
            CancelResult; reason "already_finished" for finished jobs.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobOwnershipError: If the requester does not own the job.
        """
        job = await self._repo.get_job(job_id, fresh=True)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.owner_id is None or job.owner_id != requester_id:
            raise JobOwnershipError(job_id, requester_id)
        if job.is_finished:
            logger.info(
                "Cancel ignored, job already finished",
                extra={"job_id": str(job_id), "status": job.status.value}
            )
            return CancelResult(canceled=False, reason=ALREADY_FINISHED)

        canceled = await self._repo.cancel_job(job_id, utcnow())
        await self._session.commit()

        if canceled is None:
            # Finished between the read and the update
            return CancelResult(canceled=False, reason=ALREADY_FINISHED)
        return CancelResult(canceled=True)

    async def stats(self, owner_id: str | None = None) -> dict[str, int]:
        """Job counts by status, optionally for one owner."""
        return await self._repo.get_job_stats(owner_id)
