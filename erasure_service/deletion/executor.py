"""Step executor — the per-request state machine.

Drives a request through its steps strictly in catalog order:

    pending ──▶ in_progress ──▶ completed
                    │
                    ├──▶ pending (retry: retryable step, retry_count < max)
                    └──▶ failed  (required → whole request fails)

Non-required steps are marked skipped without any collaborator call.
Retries are a bounded loop with linear backoff (base_delay * retry_count).
Step deadlines and backoff sleeps both run on the injected Clock.
"""

from __future__ import annotations

import logging
from datetime import datetime

from erasure_service.config import ErasureSettings
from erasure_service.deletion.audit import AuditTrail
from erasure_service.deletion.steps import StepHandlers
from erasure_service.errors import StepExecutionError, StepTimeoutError
from erasure_service.models.enums import DeletionRequestStatus, StepStatus
from erasure_service.scheduling.ticker import Clock
from erasure_service.schemas.deletion import DeletionRequest, StepInstance
from erasure_service.schemas.events import EventType

logger = logging.getLogger(__name__)


class StepExecutor:
    def __init__(
        self,
        handlers: StepHandlers,
        audit: AuditTrail,
        clock: Clock,
        config: ErasureSettings,
    ) -> None:
        self._handlers = handlers
        self._audit = audit
        self._clock = clock
        self._max_retries = config.max_step_retries
        self._base_delay = config.retry_base_delay_seconds

    async def execute(self, request: DeletionRequest) -> DeletionRequestStatus:
        """Run every step and leave the request in a terminal status."""
        started = self._clock.now()
        request.status = DeletionRequestStatus.IN_PROGRESS
        await self._audit.request_event(EventType.DELETION_STARTED, request)
        logger.info("Processing deletion request %s for subject %s", request.request_id, request.subject_id)

        for step in request.steps:
            if not step.required:
                step.status = StepStatus.SKIPPED
                await self._audit.step_event(EventType.STEP_SKIPPED, request, step)
                continue

            await self.run_step(request, step)

            if step.status == StepStatus.FAILED:
                request.status = DeletionRequestStatus.FAILED
                request.failed_step_id = step.id
                request.error = f"Required step '{step.name}' failed: {step.error}"
                request.current_step_id = None
                self._finish(request, started)
                logger.error("Deletion request %s failed: %s", request.request_id, request.error)
                return request.status

        request.status = DeletionRequestStatus.COMPLETED
        request.current_step_id = None
        self._finish(request, started)
        logger.info(
            "Account deletion completed for subject %s (%.3fs)",
            request.subject_id,
            request.metadata.processing_time,
        )
        return request.status

    async def run_step(self, request: DeletionRequest, step: StepInstance) -> None:
        """Run one step to completed or failed, retrying within the bound."""
        handler = self._handlers.get(step.id)

        while True:
            step.status = StepStatus.IN_PROGRESS
            step.started_at = self._clock.now()
            step.completed_at = None
            step.error = None
            request.current_step_id = step.id
            await self._audit.step_event(EventType.STEP_STARTED, request, step)
            logger.info("Executing step: %s for request %s", step.name, request.request_id)

            try:
                async with self._clock.timeout(step.timeout):
                    await handler(request)
            except TimeoutError:
                error: Exception = StepTimeoutError(
                    f"Step '{step.name}' timed out after {step.timeout:g}s"
                )
            except Exception as exc:
                error = exc
            else:
                step.status = StepStatus.COMPLETED
                step.completed_at = self._clock.now()
                await self._audit.step_event(EventType.STEP_COMPLETED, request, step)
                return

            step.status = StepStatus.FAILED
            step.error = str(error) or type(error).__name__
            step.completed_at = self._clock.now()
            await self._audit.step_event(
                EventType.STEP_FAILED, request, step, error=step.error
            )
            logger.warning("Step '%s' failed for request %s: %s", step.name, request.request_id, step.error)

            if not self._should_retry(step, error):
                return

            step.retry_count += 1
            delay = self._base_delay * step.retry_count
            await self._audit.step_event(
                EventType.STEP_RETRY_SCHEDULED, request, step, delay=delay
            )
            logger.info(
                "Retrying step '%s' (attempt %d/%d) in %.1fs",
                step.name,
                step.retry_count,
                self._max_retries,
                delay,
            )
            await self._clock.sleep(delay)
            step.status = StepStatus.PENDING

    def _should_retry(self, step: StepInstance, error: Exception) -> bool:
        if not step.retryable or step.retry_count >= self._max_retries:
            return False
        if isinstance(error, StepExecutionError):
            return error.retryable
        return True

    def _finish(self, request: DeletionRequest, started: datetime) -> None:
        now = self._clock.now()
        request.metadata.actual_completion_time = now
        request.metadata.processing_time = (now - started).total_seconds()
