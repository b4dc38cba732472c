"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from invite_jobs.constants import JobStatus


class EnqueueJobRequest(BaseModel):
    """Request body for enqueueing a job."""

    job_type: str = Field(..., min_length=1, description="Handler type, e.g. iptv.sync")
    payload: dict[str, Any] | None = Field(default=None, description="Job payload data")
    run_at: datetime | None = Field(
        default=None, description="Do not run the job before this time"
    )
    max_attempts: int | None = Field(
        default=None, ge=1, le=100, description="Attempt ceiling (default 10)"
    )


class EnqueueJobResponse(BaseModel):
    """Response body after enqueueing a job."""

    id: UUID
    job_type: str
    status: JobStatus
    next_run_at: datetime
    created_at: datetime
    message: str = "Job enqueued"


class JobResponse(BaseModel):
    """Full job details response."""

    id: UUID
    job_type: str
    status: JobStatus
    owner_id: str | None
    payload: Any
    attempts: int
    max_attempts: int
    next_run_at: datetime
    locked_by: str | None
    locked_at: datetime | None
    last_attempt_at: datetime | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    """Most-recent-first page of an owner's jobs."""

    jobs: list[JobResponse]
    count: int
    limit: int


class CancelJobResponse(BaseModel):
    """Response body after a cancel request."""

    id: UUID
    canceled: bool
    reason: str | None = None


class JobStatsResponse(BaseModel):
    """Job counts by status."""

    stats: dict[str, int]


class AuthRequest(BaseModel):
    """Authentication request."""

    api_key: str = Field(..., description="API key for authentication")
    owner_id: str = Field(..., description="Principal the token is issued for")


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    timestamp: datetime
