"""
Job dispatcher.

Maps a job's type string to exactly one registered handler and calls it
with the owner and the validated payload. The dispatcher never retries:
it returns normally on success and lets the handler's exception propagate
unchanged. Unknown types and bad payloads fail with a terminal error.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from invite_jobs.constants import JobType
from invite_jobs.errors import TerminalJobError
from invite_jobs.types.job import JobContext
from invite_jobs.types.payloads import parse_payload

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[JobContext], Awaitable[None]]


class Dispatcher:
    """Registry of handlers keyed by job type."""

    def __init__(self) -> None:
        self._handlers: dict[JobType, JobHandler] = {}

    def register(self, job_type: JobType | str) -> Callable[[JobHandler], JobHandler]:
        """
        Decorator to register a handler for a job type.

        Args:
            job_type: One of the known job types.

        Returns:
            Decorator function.

        Example:
            @dispatcher.register(JobType.SYNC)
            async def handle_sync(context: JobContext) -> None:
                ...
        """
        def decorator(handler: JobHandler) -> JobHandler:
            self.add_handler(job_type, handler)
            return handler
        return decorator

    def add_handler(self, job_type: JobType | str, handler: JobHandler) -> None:
        """
        Register a handler, replacing any existing one for the type.

        Raises:
            ValueError: If the job type is not one of the known types.
        """
        kind = JobType(job_type)
        self._handlers[kind] = handler
        logger.debug(f"Registered handler for job type: {kind}")

    def get_handler(self, job_type: str) -> JobHandler | None:
        """Get the handler for a job type, or None."""
        try:
            return self._handlers.get(JobType(job_type))
        except ValueError:
            return None

    def list_handlers(self) -> list[str]:
        """List job types that have a handler."""
        return [kind.value for kind in self._handlers]

    async def dispatch(
        self,
        job_type: str,
        payload: Any,
        owner_id: str | None,
        *,
        job_id: UUID | None = None,
        attempt: int = 1,
        max_attempts: int = 1,
    ) -> None:
        """
        Run the handler for a job type.

        Args:
            job_type: The job's type string.
            payload: Decoded payload data.
            owner_id: Requesting principal, if any.
            job_id: The job being executed, for handler logging.
            attempt: The attempt number being executed, starting at 1.
            max_attempts: The job's attempt ceiling.

        Raises:
            TerminalJobError: Unknown type, missing handler or invalid payload.
            Exception: Whatever the handler raised, unchanged.
        """
        try:
            kind = JobType(job_type)
        except ValueError:
            raise TerminalJobError.not_implemented(f"Unknown job type: {job_type}") from None

        handler = self._handlers.get(kind)
        if handler is None:
            raise TerminalJobError.config_missing(f"No handler registered for job type: {kind}")

        try:
            typed_payload = parse_payload(kind, payload)
        except ValidationError as e:
            raise TerminalJobError.validation_error(
                f"Invalid payload for {kind}: {e.error_count()} error(s), "
                f"first: {e.errors()[0]['msg']}"
            ) from e

        context = JobContext(
            job_id=job_id,
            job_type=kind.value,
            owner_id=owner_id,
            payload=typed_payload,
            attempt=attempt,
            max_attempts=max_attempts,
        )
        await handler(context)
