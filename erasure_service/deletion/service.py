"""Erasure orchestrator — submission, serialized queue processing, cancellation.

Usage:
    orchestrator = ErasureOrchestrator(identity_provider=idp, config=settings.erasure)
    result = await orchestrator.submit_deletion_request(
        "user-42",
        DeletionRequestData(reason="closing account", confirmation="DELETE_MY_ACCOUNT"),
    )
    orchestrator.start()  # queue ticker + history cleanup ticker

Requests are accepted immediately but executed one at a time: each queue
tick dequeues a single request and drives it to a terminal status before
the next tick can dequeue another.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime, timedelta

from erasure_service.config import ErasureSettings, settings
from erasure_service.deletion.audit import AuditTrail
from erasure_service.deletion.catalog import build_step_catalog, estimate_completion_time
from erasure_service.deletion.collaborators import (
    ApplicationDataStore,
    AuditSink,
    BackupStore,
    DataExporter,
    FileStore,
    IdentityProvider,
    InMemoryAuditSink,
    Notifier,
    NullApplicationDataStore,
    NullBackupStore,
    NullFileStore,
    NullNotifier,
    NullSessionStore,
    SessionStore,
)
from erasure_service.deletion.executor import StepExecutor
from erasure_service.deletion.holds import LegalHoldRegistry
from erasure_service.deletion.notifications import RequestNotifier
from erasure_service.deletion.stats import StatisticsCollector
from erasure_service.deletion.steps import StepHandlers
from erasure_service.deletion.store import DeletionRequestStore
from erasure_service.deletion.validator import RequestValidator
from erasure_service.errors import ConflictError, RequestNotFoundError
from erasure_service.integrations.identity.exporter import IdentityDataExporter
from erasure_service.models.enums import (
    DataCategory,
    DeletionRequestStatus,
    NotificationType,
    StepStatus,
)
from erasure_service.scheduling.ticker import Clock, SystemClock, Ticker
from erasure_service.schemas.deletion import (
    CancelResult,
    ConfigurationSummary,
    DeletionRequest,
    DeletionRequestData,
    DeletionStatistics,
    LegalHold,
    RequestMetadata,
    StepSummary,
    SubmitResult,
)
from erasure_service.schemas.events import EventType

logger = logging.getLogger(__name__)


class ErasureOrchestrator:
    """Public entry point of the right-to-erasure workflow."""

    def __init__(
        self,
        *,
        identity_provider: IdentityProvider,
        file_store: FileStore | None = None,
        session_store: SessionStore | None = None,
        application_data: ApplicationDataStore | None = None,
        exporter: DataExporter | None = None,
        backup_store: BackupStore | None = None,
        notifier: Notifier | None = None,
        audit_sink: AuditSink | None = None,
        config: ErasureSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or settings.erasure
        self.clock = clock or SystemClock()
        self.catalog = build_step_catalog(self.config)

        self.store = DeletionRequestStore()
        self.holds = LegalHoldRegistry(self.clock)
        self.stats = StatisticsCollector()
        self.audit = AuditTrail(audit_sink or InMemoryAuditSink(), self.clock)
        self.validator = RequestValidator(self.config, self.store, self.clock)
        self.notifier = RequestNotifier(notifier or NullNotifier(), self.clock)

        handlers = StepHandlers(
            identity_provider=identity_provider,
            file_store=file_store or NullFileStore(),
            session_store=session_store or NullSessionStore(),
            application_data=application_data or NullApplicationDataStore(),
            exporter=exporter or IdentityDataExporter(identity_provider, self.clock),
            backup_store=backup_store or NullBackupStore(),
            notifier=self.notifier,
            holds=self.holds,
            validator=self.validator,
            clock=self.clock,
        )
        self.executor = StepExecutor(handlers, self.audit, self.clock, self.config)

        # Single global execution slot
        self._processing = asyncio.Lock()

        self._queue_ticker = Ticker(
            "deletion-queue", self.config.queue_tick_seconds, self.process_queue, self.clock
        )
        self._cleanup_ticker = Ticker(
            "deletion-history-cleanup",
            self.config.history_cleanup_interval_hours * 3600,
            self.cleanup_history,
            self.clock,
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the queue processor and the history cleanup tickers."""
        self._queue_ticker.start()
        self._cleanup_ticker.start()
        logger.info(
            "Erasure orchestrator started (identity deletion=%s, backup=%s, compliance mode=%s)",
            self.config.enable_identity_deletion,
            self.config.enable_pre_deletion_backup,
            self.config.gdpr_compliance_mode,
        )

    async def stop(self) -> None:
        await self._queue_ticker.stop()
        await self._cleanup_ticker.stop()
        logger.info("Erasure orchestrator stopped")

    # ── Submission ───────────────────────────────────────────────────

    async def submit_deletion_request(
        self, subject_id: str, data: DeletionRequestData
    ) -> SubmitResult:
        """Validate, create and enqueue a deletion request.

        Raises ValidationError or ConflictError; nothing is created on error.
        """
        self.validator.validate(subject_id, data)

        now = self.clock.now()
        request = DeletionRequest(
            request_id=self._generate_request_id(now),
            subject_id=subject_id,
            reason=data.reason or "user_request",
            confirmation=data.confirmation or "",
            requested_at=now,
            requested_by=data.requested_by or subject_id,
            ip_address=data.ip_address or "unknown",
            user_agent=data.user_agent or "unknown",
            steps=[definition.instantiate() for definition in self.catalog],
            metadata=RequestMetadata(
                estimated_completion_time=now + estimate_completion_time(self.catalog),
                deadline=now + timedelta(days=self.config.max_deletion_days),
                rollback_available=self.config.enable_rollback_capability,
                compliance_mode=self.config.gdpr_compliance_mode,
            ),
        )
        result = SubmitResult(
            request_id=request.request_id,
            status=request.status,
            estimated_completion_time=request.metadata.estimated_completion_time,
            steps=[
                StepSummary(
                    id=step.id,
                    name=step.name,
                    description=step.description,
                    required=step.required,
                    status=step.status,
                )
                for step in request.steps
            ],
        )
        self.store.create(request)
        self.stats.request_received()

        await self.audit.request_event(
            EventType.DELETION_REQUESTED,
            request,
            actor_id=request.requested_by,
            reason=request.reason,
        )
        if self.config.enable_deletion_notifications:
            await self.notifier.send_best_effort(request, NotificationType.REQUEST_RECEIVED)

        logger.info(
            "Account deletion request created: subject=%s request=%s",
            subject_id,
            request.request_id,
        )
        return result

    # ── Queries ──────────────────────────────────────────────────────

    def get_deletion_status(self, request_id: str) -> DeletionRequest | None:
        """Consistent snapshot of a live or historical request."""
        return self.store.get(request_id)

    def get_statistics(self) -> DeletionStatistics:
        stats = self.stats.snapshot()
        stats.active_requests = self.store.active_count
        stats.queue_length = self.store.queue_length
        stats.history_count = self.store.history_count
        stats.configuration = ConfigurationSummary(
            identity_deletion=self.config.enable_identity_deletion,
            pre_deletion_backup=self.config.enable_pre_deletion_backup,
            deletion_verification=self.config.enable_deletion_verification,
            compliance_mode=self.config.gdpr_compliance_mode,
            cooldown_days=self.config.cooldown_days if self.config.enable_cooldown_period else None,
            max_deletion_days=self.config.max_deletion_days,
            history_retention_days=self.config.history_retention_days,
        )
        stats.steps = [definition.summary() for definition in self.catalog]
        return stats

    # ── Cancellation ─────────────────────────────────────────────────

    async def cancel_deletion_request(self, request_id: str, cancelled_by: str) -> CancelResult:
        """Cancel a request that has not started yet."""
        request = self.store.get_live(request_id)
        if request is None:
            snapshot = self.store.get(request_id)
            if snapshot is None:
                raise RequestNotFoundError(f"Deletion request {request_id} not found")
            raise ConflictError(
                f"Cannot cancel {snapshot.status.value} deletion request",
                existing_request_id=request_id,
            )

        if request.status == DeletionRequestStatus.IN_PROGRESS:
            raise ConflictError(
                "Cannot cancel deletion request that is currently being processed",
                existing_request_id=request_id,
            )
        if request.status != DeletionRequestStatus.PENDING:
            raise ConflictError(
                f"Cannot cancel {request.status.value} deletion request",
                existing_request_id=request_id,
            )

        self.store.remove_from_queue(request_id)
        request.status = DeletionRequestStatus.CANCELLED
        request.cancelled_at = self.clock.now()
        request.cancelled_by = cancelled_by
        self.stats.request_cancelled()

        await self.notifier.send_best_effort(request, NotificationType.DELETION_CANCELLED)
        await self.audit.request_event(
            EventType.DELETION_CANCELLED, request, actor_id=cancelled_by
        )
        self.store.move_to_history(request_id)

        logger.info("Deletion request %s cancelled by %s", request_id, cancelled_by)
        return CancelResult(
            request_id=request_id,
            status=request.status,
            cancelled_at=request.cancelled_at,
            cancelled_by=cancelled_by,
        )

    # ── Queue processing ─────────────────────────────────────────────

    async def process_queue(self) -> DeletionRequestStatus | None:
        """One tick: dequeue at most one request and drive it to a terminal status.

        Returns the terminal status, or None when nothing was processed.
        """
        if self._processing.locked():
            logger.debug("Deletion processor busy, skipping tick")
            return None

        async with self._processing:
            request_id = self.store.dequeue()
            if request_id is None:
                return None

            request = self.store.get_live(request_id)
            if request is None:
                logger.warning("Deletion request %s not found in store", request_id)
                return None

            return await self._process(request)

    async def _process(self, request: DeletionRequest) -> DeletionRequestStatus:
        try:
            return await self._drive(request)
        except asyncio.CancelledError:
            # Shutdown mid-request: the request must still reach history
            if self.store.get_live(request.request_id) is not None:
                await self._abandon(request, "Processing interrupted before completion")
            raise

    async def _drive(self, request: DeletionRequest) -> DeletionRequestStatus:
        self.stats.request_processed()
        try:
            status = await self.executor.execute(request)
        except Exception as exc:
            logger.exception("Failed to process deletion request %s", request.request_id)
            request.status = DeletionRequestStatus.FAILED
            request.error = str(exc)
            request.current_step_id = None
            request.metadata.actual_completion_time = self.clock.now()
            status = request.status

        if status == DeletionRequestStatus.COMPLETED:
            self.stats.request_completed(request.metadata.processing_time or 0.0)
            await self.audit.request_event(
                EventType.DELETION_COMPLETED,
                request,
                processing_time=request.metadata.processing_time,
                steps_completed=sum(1 for s in request.steps if s.status == StepStatus.COMPLETED),
            )
        else:
            self.stats.request_failed()
            await self.audit.request_event(
                EventType.DELETION_FAILED,
                request,
                error=request.error,
                failed_step=request.failed_step_id.value if request.failed_step_id else None,
            )
            await self.notifier.send_best_effort(request, NotificationType.DELETION_FAILED)

        await self._check_deadline(request)
        self.store.move_to_history(request.request_id)
        return status

    async def _abandon(self, request: DeletionRequest, reason: str) -> None:
        """Fail a request whose processing was cancelled and move it to history.

        A request that already reached a terminal status keeps it.
        """
        if request.status.is_terminal:
            self.store.move_to_history(request.request_id)
            return

        now = self.clock.now()
        step = request.step(request.current_step_id) if request.current_step_id else None
        if step is not None:
            if step.status != StepStatus.FAILED:
                step.status = StepStatus.FAILED
                step.error = reason
                step.completed_at = now
            request.failed_step_id = step.id

        request.status = DeletionRequestStatus.FAILED
        request.error = reason
        request.current_step_id = None
        request.metadata.actual_completion_time = now
        self.stats.request_failed()
        self.store.move_to_history(request.request_id)
        logger.warning("Deletion request %s abandoned: %s", request.request_id, reason)

        await self.audit.request_event(
            EventType.DELETION_FAILED,
            request,
            error=reason,
            failed_step=request.failed_step_id.value if request.failed_step_id else None,
        )

    async def _check_deadline(self, request: DeletionRequest) -> None:
        finished = request.metadata.actual_completion_time or self.clock.now()
        if finished <= request.metadata.deadline:
            return
        request.metadata.deadline_exceeded = True
        self.stats.request_overdue()
        logger.warning(
            "Deletion request %s finished after its deadline (%s)",
            request.request_id,
            request.metadata.deadline.isoformat(),
        )
        await self.audit.request_event(
            EventType.DELETION_DEADLINE_EXCEEDED,
            request,
            deadline=request.metadata.deadline.isoformat(),
        )

    # ── History cleanup ──────────────────────────────────────────────

    async def cleanup_history(self) -> int:
        """Prune history entries older than the retention horizon."""
        cutoff = self.clock.now() - timedelta(days=self.config.history_retention_days)
        removed = self.store.prune_history(cutoff)
        if removed:
            logger.info("Cleaned up %d old deletion requests (cutoff=%s)", removed, cutoff.date())
            await self.audit.system_event(
                EventType.SYSTEM_MAINTENANCE,
                action="deletion_history_cleanup",
                removed=removed,
            )
        return removed

    # ── Legal holds ──────────────────────────────────────────────────

    async def apply_legal_hold(
        self,
        subject_id: str,
        category: DataCategory,
        reason: str,
        expires_at: datetime | None = None,
    ) -> LegalHold:
        hold = self.holds.apply(subject_id, category, reason, expires_at)
        await self.audit.system_event(
            EventType.LEGAL_HOLD_APPLIED,
            subject_id=subject_id,
            category=category.value,
            reason=reason,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return hold

    async def remove_legal_hold(self, subject_id: str, category: DataCategory, reason: str) -> bool:
        removed = self.holds.remove(subject_id, category)
        if removed:
            await self.audit.system_event(
                EventType.LEGAL_HOLD_REMOVED,
                subject_id=subject_id,
                category=category.value,
                reason=reason,
            )
        return removed

    def is_under_legal_hold(self, subject_id: str, category: DataCategory) -> bool:
        return self.holds.is_under_hold(subject_id, category)

    def list_legal_holds(self, subject_id: str) -> list[LegalHold]:
        """Active holds for a subject; expired ones are dropped on the way."""
        return self.holds.list_for_subject(subject_id)

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _generate_request_id(now: datetime) -> str:
        return f"del_{int(now.timestamp() * 1000)}_{secrets.token_hex(5)}"
