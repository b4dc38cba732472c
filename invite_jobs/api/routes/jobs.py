"""
Job management routes.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from invite_jobs.api.auth import CurrentUser
from invite_jobs.constants import API_V1_PREFIX, DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT
from invite_jobs.db import get_async_session
from invite_jobs.db.models import Job
from invite_jobs.errors import JobNotFoundError, JobOwnershipError, PayloadValidationError
from invite_jobs.queue import JobQueue
from invite_jobs.types.api import (
    CancelJobResponse,
    EnqueueJobRequest,
    EnqueueJobResponse,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
)
from invite_jobs.types.payloads import decode_payload, redact_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])


def _job_to_response(job: Job) -> JobResponse:
    """Convert a Job model to a JobResponse, masking secrets in the payload."""
    return JobResponse(
        id=job.id,
        job_type=job.job_type,
        status=job.status,
        owner_id=job.owner_id,
        payload=redact_payload(decode_payload(job.payload)),
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        next_run_at=job.next_run_at,
        locked_by=job.locked_by,
        locked_at=job.locked_at,
        last_attempt_at=job.last_attempt_at,
        last_error=job.last_error,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


async def _get_owned_job(queue: JobQueue, job_id: UUID, owner_id: str) -> Job:
    job = await queue.get_by_id(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )
    if job.owner_id != owner_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )
    return job


@router.post(
    "",
    response_model=EnqueueJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enqueue a job",
    description="Submit a new job owned by the caller.",
)
async def enqueue_job(
    request: EnqueueJobRequest,
    current_user: CurrentUser,
    session: AsyncSession = Depends(get_async_session),
) -> EnqueueJobResponse:
    """
    Enqueue a job for the authenticated caller.

    Raises:
        HTTPException: 422 if the payload does not fit the job type.
    """
    queue = JobQueue(session)
    try:
        job_id = await queue.enqueue(
            job_type=request.job_type,
            payload=request.payload,
            owner_id=current_user.owner_id,
            run_at=request.run_at,
            max_attempts=request.max_attempts,
        )
    except PayloadValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    job = await queue.get_by_id(job_id)

    return EnqueueJobResponse(
        id=job.id,
        job_type=job.job_type,
        status=job.status,
        next_run_at=job.next_run_at,
        created_at=job.created_at,
    )


@router.get(
    "/stats/summary",
    response_model=JobStatsResponse,
    summary="Get job statistics",
    description="Get job counts by status for the caller.",
)
async def get_job_stats(
    current_user: CurrentUser,
    session: AsyncSession = Depends(get_async_session),
) -> JobStatsResponse:
    """Get job statistics for the current caller."""
    stats = await JobQueue(session).stats(owner_id=current_user.owner_id)
    return JobStatsResponse(stats=stats)


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
    description="Get detailed information about a specific job.",
)
async def get_job(
    job_id: UUID,
    current_user: CurrentUser,
    session: AsyncSession = Depends(get_async_session),
) -> JobResponse:
    """
    Get job details by ID.

    Raises:
        HTTPException: If job not found or not owned by the caller.
    """
    job = await _get_owned_job(JobQueue(session), job_id, current_user.owner_id)
    return _job_to_response(job)


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="List the caller's jobs, most recent first.",
)
async def list_jobs(
    current_user: CurrentUser,
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    session: AsyncSession = Depends(get_async_session),
) -> JobListResponse:
    """List jobs for the current caller."""
    jobs = await JobQueue(session).list_by_owner(current_user.owner_id, limit=limit)

    return JobListResponse(
        jobs=[_job_to_response(job) for job in jobs],
        count=len(jobs),
        limit=limit,
    )


@router.post(
    "/{job_id}/cancel",
    response_model=CancelJobResponse,
    summary="Cancel a job",
    description="Cancel a pending or running job owned by the caller.",
)
async def cancel_job(
    job_id: UUID,
    current_user: CurrentUser,
    session: AsyncSession = Depends(get_async_session),
) -> CancelJobResponse:
    """
    Cancel a job.

    A job that already finished is left unchanged and reported with
    reason "already_finished".

    Raises:
        HTTPException: 404 if the job is missing, 403 if not owned.
    """
    try:
        result = await JobQueue(session).cancel(job_id, current_user.owner_id)
    except JobNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        ) from e
    except JobOwnershipError as e:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        ) from e

    if result.canceled:
        logger.info(
            "Job canceled by owner",
            extra={"job_id": str(job_id), "owner_id": current_user.owner_id}
        )

    return CancelJobResponse(id=job_id, canceled=result.canceled, reason=result.reason)
