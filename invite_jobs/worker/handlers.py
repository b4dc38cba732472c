"""
Account handlers for the external panel API.

Each handler makes one call against the panel that hosts the media
accounts. Handlers must be idempotent: a job may run more than once if a
runner crashes after the panel call but before the outcome is recorded.

Failure mapping:
- panel not configured -> CONFIG_MISSING (terminal)
- missing owner or rejected request (4xx) -> VALIDATION_ERROR (terminal)
- network errors, 429 and 5xx, panel-reported errors -> retryable
"""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from invite_jobs.config import Settings, get_settings
from invite_jobs.constants import JobType
from invite_jobs.errors import RetryableJobError, TerminalJobError
from invite_jobs.types.job import JobContext
from invite_jobs.worker.dispatcher import Dispatcher

logger = logging.getLogger(__name__)


class PanelClient:
    """Minimal client for the panel's action-style HTTP API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Panel API base URL.
            api_key: Panel API key.
            timeout: Request timeout in seconds.
            transport: Optional transport, used to stub the panel in tests.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "PanelClient":
        return cls(
            base_url=settings.panel_base_url,
            api_key=settings.panel_api_key,
            timeout=settings.panel_timeout_seconds,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def call(self, action: str, **params: Any) -> dict[str, Any]:
        """
        Invoke a panel action.

        Args:
            action: Panel action name.
            **params: Form parameters; None values are dropped.

        Returns:
            The decoded JSON body, or {} for an empty body.

        Raises:
            TerminalJobError: Panel not configured, or request rejected.
            RetryableJobError: Transient network or panel failure.
        """
        if not self.is_configured:
            raise TerminalJobError.config_missing("Panel API not configured")

        data = {"api_key": self.api_key, "action": action}
        data.update({key: str(value) for key, value in params.items() if value is not None})

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post("/api", data=data)
        except httpx.HTTPError as e:
            raise RetryableJobError(f"Panel request failed: {e}") from e

        if response.status_code == 429 or response.is_server_error:
            raise RetryableJobError(f"Panel returned HTTP {response.status_code} for {action}")
        if response.is_client_error:
            raise TerminalJobError.validation_error(
                f"Panel rejected {action}: HTTP {response.status_code}"
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise RetryableJobError(f"Panel returned malformed JSON for {action}") from e

        if isinstance(body, dict) and body.get("result") is False:
            raise RetryableJobError(f"Panel error for {action}: {body.get('error') or 'unknown'}")
        return body if isinstance(body, dict) else {"data": body}


def _username(context: JobContext) -> str:
    """Panel username for the job: the account id, else the owner."""
    if not context.owner_id:
        raise TerminalJobError.validation_error("Missing owner")
    return getattr(context.payload, "account_id", None) or context.owner_id


def _epoch_seconds(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def build_default_dispatcher(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Dispatcher:
    """
    Build a dispatcher wired to the six panel handlers.

    Args:
        settings: Settings holding the panel configuration.
        transport: Optional httpx transport for the panel client.

    Returns:
        A Dispatcher with every JobType registered.
    """
    panel = PanelClient.from_settings(settings or get_settings(), transport=transport)
    dispatcher = Dispatcher()

    @dispatcher.register(JobType.PROVISION)
    async def handle_provision(context: JobContext) -> None:
        payload = context.payload
        username = _username(context)
        bouquets = ",".join(payload.bouquet_ids) if payload.bouquet_ids else None
        await panel.call(
            "user_create",
            username=username,
            plan_id=payload.plan_id,
            bouquet=bouquets,
            exp_date=_epoch_seconds(payload.desired_expires_at),
        )
        logger.info(
            "Provisioned panel account",
            extra={"job_id": str(context.job_id), "username": username}
        )

    @dispatcher.register(JobType.RENEW)
    async def handle_renew(context: JobContext) -> None:
        username = _username(context)
        await panel.call(
            "user_extend",
            username=username,
            exp_date=_epoch_seconds(context.payload.desired_expires_at),
        )
        logger.info(
            "Renewed panel account",
            extra={"job_id": str(context.job_id), "username": username}
        )

    @dispatcher.register(JobType.SUSPEND)
    async def handle_suspend(context: JobContext) -> None:
        username = _username(context)
        await panel.call("user_disable", username=username)
        logger.info(
            "Suspended panel account",
            extra={"job_id": str(context.job_id), "username": username}
        )

    @dispatcher.register(JobType.SYNC)
    async def handle_sync(context: JobContext) -> None:
        username = _username(context)
        info = await panel.call("user_info", username=username)
        logger.info(
            "Synced panel account",
            extra={
                "job_id": str(context.job_id),
                "username": username,
                "panel_status": info.get("status"),
            }
        )

    @dispatcher.register(JobType.CHANGE_PASSWORD)
    async def handle_change_password(context: JobContext) -> None:
        username = _username(context)
        await panel.call("user_edit", username=username, password=context.payload.new_password)
        logger.info(
            "Changed panel account password",
            extra={"job_id": str(context.job_id), "username": username}
        )

    @dispatcher.register(JobType.CHANGE_PLAN)
    async def handle_change_plan(context: JobContext) -> None:
        username = _username(context)
        await panel.call("user_edit", username=username, plan_id=context.payload.plan_id)
        logger.info(
            "Changed panel account plan",
            extra={"job_id": str(context.job_id), "username": username}
        )

    return dispatcher
