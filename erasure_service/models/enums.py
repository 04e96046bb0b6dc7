"""Domain enums used across the deletion workflow, schemas and the audit log.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class DeletionRequestStatus(str, Enum):
    """GDPR data deletion request status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (DeletionRequestStatus.PENDING, DeletionRequestStatus.IN_PROGRESS)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active


class StepStatus(str, Enum):
    """Per-step state inside a deletion request."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepId(str, Enum):
    """Pipeline steps, in catalog order."""

    VALIDATE_REQUEST = "validate_request"
    CREATE_BACKUP = "create_backup"
    CLEANUP_SESSIONS = "cleanup_sessions"
    CLEANUP_FILES = "cleanup_files"
    CLEANUP_APPLICATION_DATA = "cleanup_application_data"
    DELETE_IDENTITY_ACCOUNT = "delete_identity_account"
    VERIFY_DELETION = "verify_deletion"
    SEND_CONFIRMATION = "send_confirmation"


class DataCategory(str, Enum):
    """Data categories a legal hold can freeze."""

    SESSIONS = "sessions"
    FILES = "files"
    APPLICATION_DATA = "application_data"


class NotificationType(str, Enum):
    """Notifications sent to the subject over the life of a request."""

    REQUEST_RECEIVED = "request_received"
    DELETION_COMPLETED = "deletion_completed"
    DELETION_FAILED = "deletion_failed"
    DELETION_CANCELLED = "deletion_cancelled"
