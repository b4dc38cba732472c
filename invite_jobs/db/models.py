"""
SQLAlchemy database models.
Defines the Job table.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from invite_jobs.constants import DEFAULT_MAX_ATTEMPTS, FINISHED_STATUSES, JobStatus
from invite_jobs.policy import utcnow


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of deferred work.

    This is the authoritative source of truth for job state.
    All lifecycle transitions are conditional updates against this table.

    Key constraints:
    - status = running iff locked_by and locked_at are set
    - attempts never exceeds max_attempts
    - next_run_at is only meaningful while status = pending
    """

    __tablename__ = "jobs"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        nullable=False,
    )

    # Handler selection; unknown types are rejected at dispatch, not here
    job_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    # Requesting principal, absent for system-initiated jobs
    owner_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # JSON text, interpreted only by the handler
    payload: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", create_constraint=True, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=JobStatus.PENDING,
    )

    # Retry tracking
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_MAX_ATTEMPTS,
    )

    # Scheduling
    next_run_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )

    # Lock ownership
    locked_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    # Error tracking
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        # Due-query: pending jobs ordered by next_run_at
        Index("ix_jobs_status_next_run", "status", "next_run_at"),
        # Owner listing, newest first
        Index("ix_jobs_owner_created", "owner_id", "created_at"),
        # Reaper: running jobs by lock age
        Index("ix_jobs_status_locked_at", "status", "locked_at"),
    )

    @property
    def is_finished(self) -> bool:
        """Check if the job reached succeeded or failed."""
        return self.status in FINISHED_STATUSES

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, type={self.job_type}, "
            f"status={self.status}, attempts={self.attempts}/{self.max_attempts})"
        )
