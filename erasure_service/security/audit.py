"""SQL audit sink — persists every erasure SystemEvent to the audit_log table.

This is the system's immutable audit trail for compliance. It outlives the
in-memory request history, which is pruned after the retention horizon.

Never raises — failures are logged but never propagate to the workflow.
"""

from __future__ import annotations

import logging

from erasure_service.db.engine import async_session_factory
from erasure_service.models.audit import AuditLog
from erasure_service.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


class SqlAuditSink:
    async def record(self, event: SystemEvent) -> None:
        """Write a SystemEvent to the audit_log table."""
        try:
            async with async_session_factory() as db:
                db.add(AuditLog(
                    event_type=event.event_type.value,
                    request_id=event.request_id,
                    subject_id=event.subject_id,
                    step_id=event.step_id,
                    actor_id=event.actor_id,
                    source_module=event.source_module,
                    data={**event.data, "event_id": str(event.id), "timestamp": event.timestamp.isoformat()},
                ))
                await db.commit()
        except Exception:
            logger.exception(
                "Failed to persist audit event: %s (request=%s)",
                event.event_type.value,
                event.request_id,
            )
