"""SQLAlchemy ORM models and domain enums.

Import all models here so Base.metadata.create_all() discovers them.
"""

from __future__ import annotations

from erasure_service.models.audit import AuditLog
from erasure_service.models.base import Base
from erasure_service.models.enums import (
    DataCategory,
    DeletionRequestStatus,
    NotificationType,
    StepId,
    StepStatus,
)

__all__ = [
    "AuditLog",
    "Base",
    "DataCategory",
    "DeletionRequestStatus",
    "NotificationType",
    "StepId",
    "StepStatus",
]
