"""
Clock, backoff and failure classification.

Pure functions shared by the runner and the queue API. Timestamps are naive
UTC datetimes throughout so they compare consistently on every backend.
"""

from datetime import datetime, timedelta, timezone

from invite_jobs.constants import (
    BACKOFF_BASE,
    BACKOFF_CAP,
    DEFAULT_BATCH_SIZE,
    MAX_BATCH_SIZE,
    MIN_BATCH_SIZE,
    TerminalErrorTag,
)
from invite_jobs.errors import JobExecutionError


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def compute_backoff(
    attempts: int,
    base: timedelta = BACKOFF_BASE,
    cap: timedelta = BACKOFF_CAP,
) -> timedelta:
    """
    Delay before the next attempt after `attempts` failures.

    Doubles from `base` per attempt and is capped at `cap`:
    min(cap, base * 2^(attempts-1)). Counts below 1 are treated as 1.

    Args:
        attempts: Number of attempts made so far.
        base: Delay after the first failure.
        cap: Upper bound on the delay.

    Returns:
        The delay as a timedelta.
    """
    exponent = max(0, attempts - 1)
    # Past this point the doubled delay is above any sane cap anyway
    if exponent >= 32:
        return cap
    return min(cap, base * (2**exponent))


def compute_backoff_ms(attempts: int) -> int:
    """Backoff delay in whole milliseconds."""
    return int(compute_backoff(attempts) / timedelta(milliseconds=1))


def is_terminal_error(message: str) -> bool:
    """
    Check whether an error message marks a non-retryable failure.

    Matches a case-sensitive prefix of CONFIG_MISSING, NOT_IMPLEMENTED or
    VALIDATION_ERROR. Every other message, including "", is retryable.
    """
    return message.startswith(tuple(tag.value for tag in TerminalErrorTag))


def classify_failure(exc: BaseException) -> tuple[str, bool]:
    """
    Turn a handler exception into (message, terminal).

    Tagged execution errors decide by their type. Anything else falls back
    to the message-prefix convention and defaults to retryable.
    """
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, JobExecutionError):
        return message, exc.terminal
    return message, is_terminal_error(message)


def clamp_batch_size(batch_size: int | None) -> int:
    """Clamp a requested sweep batch size to [1, 50]."""
    if batch_size is None:
        batch_size = DEFAULT_BATCH_SIZE
    return min(max(batch_size, MIN_BATCH_SIZE), MAX_BATCH_SIZE)
