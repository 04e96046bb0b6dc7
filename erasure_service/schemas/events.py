"""SystemEvent schema — the event type that flows through the erasure service.

Every request and step transition produces a SystemEvent. The audit trail
appends them to the AuditSink; notifications are published on the event bus.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the system."""

    # Request lifecycle
    DELETION_REQUESTED = "gdpr.deletion_requested"
    DELETION_STARTED = "gdpr.deletion_started"
    DELETION_COMPLETED = "gdpr.deletion_completed"
    DELETION_FAILED = "gdpr.deletion_failed"
    DELETION_CANCELLED = "gdpr.deletion_cancelled"
    DELETION_DEADLINE_EXCEEDED = "gdpr.deletion_deadline_exceeded"

    # Step transitions
    STEP_STARTED = "gdpr.step_started"
    STEP_COMPLETED = "gdpr.step_completed"
    STEP_FAILED = "gdpr.step_failed"
    STEP_RETRY_SCHEDULED = "gdpr.step_retry_scheduled"
    STEP_SKIPPED = "gdpr.step_skipped"

    # Legal holds
    LEGAL_HOLD_APPLIED = "gdpr.legal_hold_applied"
    LEGAL_HOLD_REMOVED = "gdpr.legal_hold_removed"

    # Notifications
    NOTIFICATION_SENT = "notification.sent"

    # System
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_SHUTDOWN = "system.shutdown"
    SYSTEM_MAINTENANCE = "system.maintenance"


class SystemEvent(BaseModel):
    """Core event that flows through the erasure service.

    Immutable once created. Consumed by:
    - AuditSink → append-only audit trail (audit_log table in production)
    - event bus subscribers → notification delivery
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Context (optional: maintenance events have no request)
    request_id: str | None = None
    subject_id: str | None = None
    step_id: str | None = None
    actor_id: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
