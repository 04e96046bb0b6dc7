"""Event bus for side-channel SystemEvents.

Subject notifications and system lifecycle events travel here. Request and
step transitions go straight to the AuditSink and never depend on the bus.

Usage:
    from erasure_service.events import event_bus

    # At startup, before anything emits:
    event_bus.subscribe(deliver, [EventType.NOTIFICATION_SENT])
    event_bus.start()

    await event_bus.emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP))

    # At shutdown; queued events are delivered before this returns:
    await event_bus.stop()

Until start() is called, emit() delivers inline.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from erasure_service.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


class EventBus:
    def __init__(self) -> None:
        self._global: list[EventHandler] = []
        self._typed: dict[EventType, list[EventHandler]] = {}
        self._queue: asyncio.Queue[SystemEvent] | None = None
        self._worker: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def subscribe(self, handler: EventHandler, event_types: list[EventType] | None = None) -> None:
        """Register an async handler for the given event types, or for every event."""
        if event_types is None:
            self._global.append(handler)
        else:
            for event_type in event_types:
                self._typed.setdefault(event_type, []).append(handler)
        logger.info(
            "Subscribed %s to %s",
            getattr(handler, "__qualname__", handler),
            "all events" if event_types is None else [t.value for t in event_types],
        )

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._global:
            self._global.remove(handler)
        for handlers in self._typed.values():
            if handler in handlers:
                handlers.remove(handler)

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return [*self._global, *self._typed.get(event_type, [])]

    async def emit(self, event: SystemEvent) -> None:
        """Publish an event. Queued for the worker when running, otherwise delivered inline."""
        if self._queue is None:
            await self.dispatch(event)
            return
        await self._queue.put(event)
        logger.debug("Event queued: %s (request=%s)", event.event_type.value, event.request_id)

    async def dispatch(self, event: SystemEvent) -> None:
        """Deliver one event to every matching handler. Handler failures are logged, not raised."""
        handlers = self.handlers_for(event.event_type)
        if not handlers:
            return

        results = await asyncio.gather(*[h(event) for h in handlers], return_exceptions=True)
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Handler %s failed for %s: %s",
                    getattr(handler, "__qualname__", handler),
                    event.event_type.value,
                    result,
                    exc_info=result,
                )

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(self._queue))
        logger.info(
            "Event bus started with %d global + %d typed subscribers",
            len(self._global),
            sum(len(v) for v in self._typed.values()),
        )

    async def stop(self) -> None:
        """Drain the queue, then stop the worker."""
        queue, worker = self._queue, self._worker
        self._queue = None
        self._worker = None

        if queue is not None and worker is not None and not worker.done():
            await queue.join()
        if worker is not None and not worker.done():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        logger.info("Event bus stopped")

    async def _run(self, queue: asyncio.Queue[SystemEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception("Error dispatching %s", event.event_type.value)
            finally:
                queue.task_done()


event_bus = EventBus()
