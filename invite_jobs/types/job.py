"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from invite_jobs.constants import LockRefusal


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Carries the requesting owner and the validated payload.
    """

    job_id: UUID | None
    job_type: str
    owner_id: str | None
    payload: Any
    attempt: int = 1
    max_attempts: int = 1

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last attempt before a terminal failure."""
        return self.attempt >= self.max_attempts


@dataclass(frozen=True)
class LockResult:
    """Outcome of a lock attempt on a single job."""

    locked: bool
    reason: LockRefusal | None = None


@dataclass(frozen=True)
class CancelResult:
    """Outcome of a cancel request."""

    canceled: bool
    reason: str | None = None


@dataclass
class SweepResult:
    """
    Counters for one sweep of the runner loop.

    `processed` counts jobs that were locked and dispatched; refused
    locks are counted in `skipped` only.
    """

    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0
