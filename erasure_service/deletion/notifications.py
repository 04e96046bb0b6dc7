"""Sends subject notifications and records them on the request."""

from __future__ import annotations

import logging

from erasure_service.deletion.collaborators import Notifier
from erasure_service.models.enums import NotificationType
from erasure_service.scheduling.ticker import Clock
from erasure_service.schemas.deletion import DeletionRequest, NotificationRecord

logger = logging.getLogger(__name__)


class RequestNotifier:
    def __init__(self, notifier: Notifier, clock: Clock) -> None:
        self._notifier = notifier
        self._clock = clock

    async def send(self, request: DeletionRequest, event_type: NotificationType) -> None:
        """Send and record. Errors propagate to the caller."""
        await self._notifier.send(request.request_id, event_type.value)
        request.notifications.append(
            NotificationRecord(event_type=event_type, sent_at=self._clock.now())
        )
        logger.info("Sent %s notification for request %s", event_type.value, request.request_id)

    async def send_best_effort(self, request: DeletionRequest, event_type: NotificationType) -> bool:
        """Send outside the pipeline; a failure is logged and never changes request state."""
        try:
            await self.send(request, event_type)
        except Exception:
            logger.warning(
                "Failed to send %s notification for request %s",
                event_type.value,
                request.request_id,
                exc_info=True,
            )
            return False
        return True
