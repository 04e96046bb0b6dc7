"""Pydantic schemas for deletion requests, their steps, and the public API.

DeletionRequest is the live, mutable record driven by the step executor.
Callers only ever see deep copies of it (see DeletionRequestStore.get).
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from erasure_service.models.enums import (
    DataCategory,
    DeletionRequestStatus,
    NotificationType,
    StepId,
    StepStatus,
)


# ---------------------------------------------------------------------------
# Request building blocks
# ---------------------------------------------------------------------------


class StepInstance(BaseModel):
    """One catalog step embedded in a request.

    id/name/description/required/retryable/timeout are copied from the
    catalog when the request is created and never recomputed.
    """

    id: StepId
    name: str
    description: str
    required: bool
    retryable: bool
    timeout: float  # seconds

    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    retry_count: int = 0


class BackupInfo(BaseModel):
    """Pre-deletion snapshot produced by the backup step."""

    created: bool = False
    location: str | None = None
    size: int | None = None  # bytes
    checksum: str | None = None  # sha256 hex
    created_at: datetime | None = None


class VerificationInfo(BaseModel):
    """Per-destructive-step confirmation flags."""

    identity_account_deleted: bool = False
    application_data_deleted: bool = False
    files_deleted: bool = False
    sessions_deleted: bool = False
    verified_at: datetime | None = None


class RequestMetadata(BaseModel):
    estimated_completion_time: datetime
    deadline: datetime
    actual_completion_time: datetime | None = None
    processing_time: float | None = None  # seconds
    rollback_available: bool = False
    compliance_mode: bool = True
    deadline_exceeded: bool = False


class NotificationRecord(BaseModel):
    event_type: NotificationType
    sent_at: datetime


class DeletionRequest(BaseModel):
    """A right-to-erasure request and its full pipeline state."""

    request_id: str
    subject_id: str
    status: DeletionRequestStatus = DeletionRequestStatus.PENDING

    # Immutable request context
    reason: str
    confirmation: str = ""
    requested_at: datetime
    requested_by: str
    ip_address: str = "unknown"
    user_agent: str = "unknown"

    steps: list[StepInstance]
    current_step_id: StepId | None = None

    backup: BackupInfo = Field(default_factory=BackupInfo)
    verification: VerificationInfo = Field(default_factory=VerificationInfo)
    metadata: RequestMetadata
    notifications: list[NotificationRecord] = Field(default_factory=list)

    # Terminal details
    error: str | None = None
    failed_step_id: StepId | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None

    def step(self, step_id: StepId) -> StepInstance | None:
        """Return the embedded step with the given id, if present."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class LegalHold(BaseModel):
    """Blocks a cleanup category for a subject until removed or expired."""

    subject_id: str
    category: DataCategory
    reason: str
    applied_at: datetime
    expires_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or now < self.expires_at


# ---------------------------------------------------------------------------
# Public API payloads
# ---------------------------------------------------------------------------


class DeletionRequestData(BaseModel):
    """Caller-supplied submission payload."""

    reason: str | None = None
    confirmation: str | None = None
    requested_by: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class StepSummary(BaseModel):
    id: StepId
    name: str
    description: str
    required: bool
    status: StepStatus


class SubmitResult(BaseModel):
    request_id: str
    status: DeletionRequestStatus
    estimated_completion_time: datetime
    steps: list[StepSummary]
    message: str = (
        "Account deletion request has been submitted and will be processed "
        "according to GDPR requirements"
    )


class CancelResult(BaseModel):
    request_id: str
    status: DeletionRequestStatus
    cancelled_at: datetime
    cancelled_by: str


class CatalogStepSummary(BaseModel):
    id: StepId
    name: str
    required: bool
    retryable: bool
    timeout_minutes: float


class ConfigurationSummary(BaseModel):
    identity_deletion: bool
    pre_deletion_backup: bool
    deletion_verification: bool
    compliance_mode: bool
    cooldown_days: int | None
    max_deletion_days: int
    history_retention_days: int


class DeletionStatistics(BaseModel):
    """Aggregate counters plus a summary of the active configuration."""

    requests_received: int = 0
    requests_processed: int = 0
    requests_completed: int = 0
    requests_failed: int = 0
    requests_cancelled: int = 0
    requests_overdue: int = 0
    total_processing_time: float = 0.0  # seconds
    average_processing_time: float = 0.0  # seconds

    active_requests: int = 0
    queue_length: int = 0
    history_count: int = 0

    configuration: ConfigurationSummary | None = None
    steps: list[CatalogStepSummary] = Field(default_factory=list)
