"""Audit trail for deletion requests — one SystemEvent per transition.

Events are appended to the configured AuditSink. A sink failure is logged
and swallowed: auditing must never change the outcome of an erasure.
"""

from __future__ import annotations

import logging
from typing import Any

from erasure_service.deletion.collaborators import AuditSink
from erasure_service.scheduling.ticker import Clock
from erasure_service.schemas.deletion import DeletionRequest, StepInstance
from erasure_service.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

_SOURCE = "deletion"


class AuditTrail:
    def __init__(self, sink: AuditSink, clock: Clock) -> None:
        self._sink = sink
        self._clock = clock

    async def request_event(
        self,
        event_type: EventType,
        request: DeletionRequest,
        actor_id: str | None = None,
        **data: Any,
    ) -> None:
        await self._record(SystemEvent(
            event_type=event_type,
            timestamp=self._clock.now(),
            request_id=request.request_id,
            subject_id=request.subject_id,
            actor_id=actor_id,
            data={"status": request.status.value, **data},
            source_module=f"{_SOURCE}.service",
        ))

    async def step_event(
        self,
        event_type: EventType,
        request: DeletionRequest,
        step: StepInstance,
        **data: Any,
    ) -> None:
        await self._record(SystemEvent(
            event_type=event_type,
            timestamp=self._clock.now(),
            request_id=request.request_id,
            subject_id=request.subject_id,
            step_id=step.id.value,
            data={
                "step_status": step.status.value,
                "retry_count": step.retry_count,
                **data,
            },
            source_module=f"{_SOURCE}.executor",
        ))

    async def system_event(
        self,
        event_type: EventType,
        subject_id: str | None = None,
        actor_id: str | None = None,
        **data: Any,
    ) -> None:
        await self._record(SystemEvent(
            event_type=event_type,
            timestamp=self._clock.now(),
            subject_id=subject_id,
            actor_id=actor_id,
            data=data,
            source_module=f"{_SOURCE}.service",
        ))

    async def _record(self, event: SystemEvent) -> None:
        try:
            await self._sink.record(event)
        except Exception:
            logger.exception(
                "Failed to record audit event: %s (request=%s)",
                event.event_type.value,
                event.request_id,
            )
