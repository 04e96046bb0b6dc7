"""Static, ordered catalog of deletion pipeline steps.

The order below is the execution order. Backup precedes every destructive
step; verification follows identity deletion; the confirmation goes out last.
Whether a step is required comes from ErasureSettings, so the catalog is built
per settings instance and copied into each request at creation time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from erasure_service.config import ErasureSettings
from erasure_service.models.enums import StepId
from erasure_service.schemas.deletion import CatalogStepSummary, StepInstance

# Steps whose failures are worth retrying (external systems, transient errors)
RETRYABLE_STEPS: frozenset[StepId] = frozenset({
    StepId.CREATE_BACKUP,
    StepId.CLEANUP_SESSIONS,
    StepId.CLEANUP_FILES,
    StepId.CLEANUP_APPLICATION_DATA,
    StepId.DELETE_IDENTITY_ACCOUNT,
    StepId.VERIFY_DELETION,
})

# Added on top of the summed step timeouts when estimating completion
_BASE_COMPLETION_TIME = timedelta(hours=1)


@dataclass(frozen=True)
class StepDefinition:
    id: StepId
    name: str
    description: str
    required: bool
    timeout: float  # seconds

    @property
    def retryable(self) -> bool:
        return self.id in RETRYABLE_STEPS

    def instantiate(self) -> StepInstance:
        """Copy this definition into a fresh, pending StepInstance."""
        return StepInstance(
            id=self.id,
            name=self.name,
            description=self.description,
            required=self.required,
            retryable=self.retryable,
            timeout=self.timeout,
        )

    def summary(self) -> CatalogStepSummary:
        return CatalogStepSummary(
            id=self.id,
            name=self.name,
            required=self.required,
            retryable=self.retryable,
            timeout_minutes=self.timeout / 60,
        )


def build_step_catalog(config: ErasureSettings) -> tuple[StepDefinition, ...]:
    """Return the step catalog for the given policy, in execution order."""
    return (
        StepDefinition(
            id=StepId.VALIDATE_REQUEST,
            name="Validate Deletion Request",
            description="Validate subject identity and deletion request",
            required=True,
            timeout=5 * 60,
        ),
        StepDefinition(
            id=StepId.CREATE_BACKUP,
            name="Create Data Backup",
            description="Create backup of subject data before deletion",
            required=config.enable_pre_deletion_backup,
            timeout=30 * 60,
        ),
        StepDefinition(
            id=StepId.CLEANUP_SESSIONS,
            name="Cleanup User Sessions",
            description="Terminate all sessions and clear session data",
            required=config.enable_session_cleanup,
            timeout=5 * 60,
        ),
        StepDefinition(
            id=StepId.CLEANUP_FILES,
            name="Cleanup User Files",
            description="Delete all subject-associated files",
            required=config.enable_file_cleanup,
            timeout=60 * 60,
        ),
        StepDefinition(
            id=StepId.CLEANUP_APPLICATION_DATA,
            name="Cleanup Application Data",
            description="Remove subject data from application databases",
            required=config.enable_application_data_cleanup,
            timeout=30 * 60,
        ),
        StepDefinition(
            id=StepId.DELETE_IDENTITY_ACCOUNT,
            name="Delete Identity Provider Account",
            description="Delete the account from the identity provider",
            required=config.enable_identity_deletion,
            timeout=15 * 60,
        ),
        StepDefinition(
            id=StepId.VERIFY_DELETION,
            name="Verify Account Deletion",
            description="Verify that the account has been completely deleted",
            required=config.enable_deletion_verification,
            timeout=10 * 60,
        ),
        StepDefinition(
            id=StepId.SEND_CONFIRMATION,
            name="Send Completion Notification",
            description="Send deletion completion notification",
            required=config.enable_completion_notifications,
            timeout=5 * 60,
        ),
    )


def estimate_completion_time(catalog: tuple[StepDefinition, ...]) -> timedelta:
    """Base time plus the worst-case duration of every required step."""
    step_time = sum(step.timeout for step in catalog if step.required)
    return _BASE_COMPLETION_TIME + timedelta(seconds=step_time)
