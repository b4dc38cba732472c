"""
Application constants.
Centralized location for all constant values used across the application.
"""

from datetime import timedelta
from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> RUNNING (lock acquired by a runner)
    - RUNNING -> SUCCEEDED (handler returned)
    - RUNNING -> PENDING (retryable failure, attempts left)
    - RUNNING -> FAILED (terminal failure or attempts exhausted)
    - PENDING/RUNNING -> CANCELED (owner request)
    - RUNNING -> PENDING (stale lock reclaimed by the reaper)
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


# Statuses a cancel request can no longer change
FINISHED_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED})


class JobType(StrEnum):
    """Job types the dispatcher knows how to route."""

    PROVISION = "iptv.provision"
    RENEW = "iptv.renew"
    SUSPEND = "iptv.suspend"
    SYNC = "iptv.sync"
    CHANGE_PASSWORD = "iptv.changePassword"
    CHANGE_PLAN = "iptv.changePlan"


class TerminalErrorTag(StrEnum):
    """Message prefixes marking a failure as non-retryable."""

    CONFIG_MISSING = "CONFIG_MISSING"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class LockRefusal(StrEnum):
    """Reasons a lock attempt is refused."""

    MISSING = "missing"
    NOT_PENDING = "not_pending"
    NOT_DUE = "not_due"


ALREADY_FINISHED = "already_finished"
LOCK_EXPIRED_PREFIX = "LOCK_EXPIRED"

# Backoff policy
BACKOFF_BASE = timedelta(minutes=1)
BACKOFF_CAP = timedelta(hours=1)

# Default values
DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_BATCH_SIZE = 10
MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 50
DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100
DEFAULT_RUNNER_ID = "cron"

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_JOBS_ENQUEUED = "jobs_enqueued_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_LOCKS_ACQUIRED = "job_locks_acquired_total"
METRIC_LOCKS_REFUSED = "job_locks_refused_total"
METRIC_STALE_LOCKS_RECLAIMED = "job_stale_locks_reclaimed_total"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_SWEEP = "sweep"
SPAN_LOCK_JOB = "lock_job"
SPAN_DISPATCH_JOB = "dispatch_job"
SPAN_RECORD_OUTCOME = "record_outcome"
