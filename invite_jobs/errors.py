"""
Domain exceptions.

Handlers signal how a failure should be treated by raising one of the two
execution errors: RetryableJobError sends the job back to the queue with
backoff, TerminalJobError fails it permanently. Terminal messages keep the
"<TAG>: <detail>" form so stored errors stay readable.
"""

from uuid import UUID

from invite_jobs.constants import TerminalErrorTag


class JobQueueError(Exception):
    """Base class for all job queue errors."""


class JobExecutionError(JobQueueError):
    """Failure raised while executing a job handler."""

    terminal: bool = False


class RetryableJobError(JobExecutionError):
    """Transient failure; the job will be retried after a backoff."""

    terminal = False


class TerminalJobError(JobExecutionError):
    """Permanent failure; the job will not be retried."""

    terminal = True

    def __init__(self, tag: TerminalErrorTag, detail: str):
        self.tag = tag
        self.detail = detail
        super().__init__(f"{tag}: {detail}")

    @classmethod
    def config_missing(cls, detail: str) -> "TerminalJobError":
        return cls(TerminalErrorTag.CONFIG_MISSING, detail)

    @classmethod
    def not_implemented(cls, detail: str) -> "TerminalJobError":
        return cls(TerminalErrorTag.NOT_IMPLEMENTED, detail)

    @classmethod
    def validation_error(cls, detail: str) -> "TerminalJobError":
        return cls(TerminalErrorTag.VALIDATION_ERROR, detail)


class JobNotFoundError(JobQueueError):
    """Raised when a job id does not exist."""

    def __init__(self, job_id: UUID):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobOwnershipError(JobQueueError):
    """Raised when a principal acts on a job it does not own."""

    def __init__(self, job_id: UUID, requester_id: str):
        self.job_id = job_id
        self.requester_id = requester_id
        super().__init__(f"Requester {requester_id} does not own job {job_id}")


class PayloadValidationError(JobQueueError):
    """Raised when an enqueued payload does not fit its job type."""

    def __init__(self, job_type: str, detail: str):
        self.job_type = job_type
        self.detail = detail
        super().__init__(f"Invalid payload for {job_type}: {detail}")
