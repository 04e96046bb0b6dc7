"""Clocks and periodic tickers for the deletion queue and history cleanup.

Everything time-related in the workflow goes through a Clock so tests can
drive virtual time:

    clock = ManualClock()
    ticker = Ticker("deletion-queue", 30, orchestrator.process_queue, clock)
    ticker.start()
    await clock.advance(30)   # exactly one tick fires

    async with clock.timeout(60):   # TimeoutError once virtual time passes 60 s
        await step()
"""

from __future__ import annotations

import asyncio
import contextlib
import heapq
import itertools
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[object]]


class Clock(Protocol):
    def now(self) -> datetime: ...

    async def sleep(self, seconds: float) -> None: ...

    def timeout(self, seconds: float) -> contextlib.AbstractAsyncContextManager[object]:
        """Async context that raises TimeoutError once ``seconds`` have elapsed."""
        ...


class SystemClock:
    """Wall-clock time and real asyncio sleeps."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def timeout(self, seconds: float) -> contextlib.AbstractAsyncContextManager[object]:
        return asyncio.timeout(seconds)


@dataclass(eq=False)
class _Deadline:
    at: datetime
    task: asyncio.Task[object]
    fired: bool = False


class ManualClock:
    """Virtual clock advanced explicitly by tests.

    With ``auto_advance=True`` every ``sleep`` moves time forward and returns
    immediately (handy for retry backoff). Otherwise sleepers block until
    ``advance`` carries the clock past their deadline. Timeouts fire whenever
    virtual time passes them, by either route.
    """

    def __init__(self, start: datetime | None = None, *, auto_advance: bool = False) -> None:
        self._now = start or datetime(2026, 1, 1, tzinfo=UTC)
        self._auto_advance = auto_advance
        self._sleepers: list[tuple[datetime, int, asyncio.Future[None]]] = []
        self._deadlines: list[_Deadline] = []
        self._counter = itertools.count()
        self.slept: list[float] = []

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        if self._auto_advance:
            self._now += timedelta(seconds=seconds)
            self._fire_due()
            await asyncio.sleep(0)
            return

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        deadline = self._now + timedelta(seconds=seconds)
        heapq.heappush(self._sleepers, (deadline, next(self._counter), future))
        await future

    @contextlib.asynccontextmanager
    async def timeout(self, seconds: float) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if task is None:
            msg = "ManualClock.timeout must be used inside a task"
            raise RuntimeError(msg)

        deadline = _Deadline(self._now + timedelta(seconds=seconds), task)
        self._deadlines.append(deadline)
        try:
            yield
        except asyncio.CancelledError:
            if deadline.fired:
                task.uncancel()
                raise TimeoutError from None
            raise
        finally:
            if deadline in self._deadlines:
                self._deadlines.remove(deadline)

    async def advance(self, seconds: float) -> None:
        """Move time forward, waking every sleeper and timeout whose deadline has passed."""
        target = self._now + timedelta(seconds=seconds)
        while True:
            due = self._next_due()
            if due is None or due > target:
                break
            self._now = max(self._now, due)
            self._fire_due()
            # Let the woken coroutines run (and possibly sleep again) before moving on
            for _ in range(5):
                await asyncio.sleep(0)
        self._now = target

    def _next_due(self) -> datetime | None:
        candidates = [d.at for d in self._deadlines]
        if self._sleepers:
            candidates.append(self._sleepers[0][0])
        return min(candidates, default=None)

    def _fire_due(self) -> None:
        while self._sleepers and self._sleepers[0][0] <= self._now:
            _, _, future = heapq.heappop(self._sleepers)
            if not future.done():
                future.set_result(None)
        for deadline in list(self._deadlines):
            if deadline.at <= self._now:
                self._deadlines.remove(deadline)
                deadline.fired = True
                deadline.task.cancel()


class Ticker:
    """Runs an async callback every ``interval`` seconds on a background task.

    Ticks never overlap: the next sleep starts only after the callback returns.
    A failing callback is logged and the ticker keeps going.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: TickCallback,
        clock: Clock | None = None,
    ) -> None:
        self.name = name
        self.interval = interval
        self._callback = callback
        self._clock = clock or SystemClock()
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop if not already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"ticker:{self.name}")
        logger.info("Ticker %s started (interval=%ss)", self.name, self.interval)

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to exit."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Ticker %s stopped", self.name)

    async def _run(self) -> None:
        while True:
            try:
                await self._clock.sleep(self.interval)
                self.ticks += 1
                await self._callback()
            except asyncio.CancelledError:
                logger.debug("Ticker %s cancelled", self.name)
                raise
            except Exception:
                logger.exception("Ticker %s callback failed", self.name)
