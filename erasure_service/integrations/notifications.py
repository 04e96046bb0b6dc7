"""Subject notifications over the event bus.

The erasure workflow only announces a NOTIFICATION_SENT event. Whatever
listens for it on the bus does the delivery; the stock listener writes the
notification to the service log.
"""

from __future__ import annotations

import logging

from erasure_service.events import EventBus, event_bus
from erasure_service.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class EventNotifier:
    def __init__(self, bus: EventBus | None = None) -> None:
        self._bus = bus or event_bus

    async def send(self, request_id: str, event_type: str) -> None:
        await self._bus.emit(SystemEvent(
            event_type=EventType.NOTIFICATION_SENT,
            request_id=request_id,
            data={"notification": event_type},
            source_module="integrations.notifications",
        ))
        logger.debug("Notification %s queued for request %s", event_type, request_id)


async def log_notification(event: SystemEvent) -> None:
    """Delivery handler that records each subject notification in the log."""
    logger.info(
        "Subject notification %s for request %s",
        event.data.get("notification", "unknown"),
        event.request_id,
    )
