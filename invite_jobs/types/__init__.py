"""
Type definitions for the job queue.
Contains input/output type definitions for all functions, grouped by module.
"""

from invite_jobs.types.api import (
    AuthRequest,
    CancelJobResponse,
    EnqueueJobRequest,
    EnqueueJobResponse,
    HealthResponse,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
    TokenResponse,
)
from invite_jobs.types.job import (
    CancelResult,
    JobContext,
    LockResult,
    SweepResult,
)
from invite_jobs.types.payloads import (
    PAYLOAD_MODELS,
    JobPayload,
    decode_payload,
    encode_payload,
    parse_payload,
)

__all__ = [
    # API types
    "EnqueueJobRequest",
    "EnqueueJobResponse",
    "JobResponse",
    "JobListResponse",
    "CancelJobResponse",
    "JobStatsResponse",
    "AuthRequest",
    "TokenResponse",
    "HealthResponse",
    # Job types
    "JobContext",
    "LockResult",
    "CancelResult",
    "SweepResult",
    # Payloads
    "JobPayload",
    "PAYLOAD_MODELS",
    "parse_payload",
    "encode_payload",
    "decode_payload",
]
