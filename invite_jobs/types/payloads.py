"""
Typed payloads, one model per job type.

Payloads are stored as JSON text. Known job types are validated against
their model when enqueued and again before dispatch. Field names use the
camelCase keys the portal sends (accountId, planId, ...), with snake_case
attribute access. Unknown keys are kept so older payloads still dispatch.
"""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from invite_jobs.constants import JobType

# Keys whose values never leave the service in API responses
SENSITIVE_KEYS = frozenset({"newPassword", "new_password", "password"})


class JobPayload(BaseModel):
    """Base payload: camelCase aliases, extra keys allowed."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ProvisionPayload(JobPayload):
    account_id: str | None = None
    plan_id: str | None = None
    bouquet_ids: list[str] | None = None
    desired_expires_at: datetime | None = None


class RenewPayload(JobPayload):
    account_id: str | None = None
    desired_expires_at: datetime | None = None


class SuspendPayload(JobPayload):
    account_id: str | None = None


class SyncPayload(JobPayload):
    account_id: str | None = None


class ChangePasswordPayload(JobPayload):
    account_id: str | None = None
    new_password: str = Field(min_length=8)


class ChangePlanPayload(JobPayload):
    account_id: str | None = None
    plan_id: str = Field(min_length=1)


PAYLOAD_MODELS: dict[JobType, type[JobPayload]] = {
    JobType.PROVISION: ProvisionPayload,
    JobType.RENEW: RenewPayload,
    JobType.SUSPEND: SuspendPayload,
    JobType.SYNC: SyncPayload,
    JobType.CHANGE_PASSWORD: ChangePasswordPayload,
    JobType.CHANGE_PLAN: ChangePlanPayload,
}


def parse_payload(job_type: JobType, data: Any) -> JobPayload:
    """
    Validate raw payload data against the model for a job type.

    Raises:
        pydantic.ValidationError: If the data does not fit the model.
    """
    model = PAYLOAD_MODELS[job_type]
    return model.model_validate({} if data is None else data)


def encode_payload(payload: Any) -> str | None:
    """
    Serialize a payload for storage.

    Raises:
        TypeError: If the payload is not JSON serializable.
    """
    if payload is None:
        return None
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(payload)


def decode_payload(text: str | None) -> Any:
    """
    Deserialize a stored payload.

    Malformed JSON is wrapped as {"raw": text} instead of raising, so a bad
    row never aborts a sweep.
    """
    if text is None:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def redact_payload(payload: Any) -> Any:
    """Mask sensitive values in a decoded payload, recursively."""
    if isinstance(payload, dict):
        return {
            key: "***" if key in SENSITIVE_KEYS else redact_payload(value)
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [redact_payload(item) for item in payload]
    return payload
