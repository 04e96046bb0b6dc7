"""Step implementations — one coroutine per catalog step.

Each handler receives the live request, calls its collaborator, records
what it observed on the request (backup, verification flags) and raises on
failure. Timeouts, retries and status bookkeeping belong to the executor.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Awaitable, Callable

from erasure_service.deletion.collaborators import (
    ApplicationDataStore,
    BackupStore,
    DataExporter,
    FileStore,
    IdentityProvider,
    SessionStore,
)
from erasure_service.deletion.holds import LegalHoldRegistry
from erasure_service.deletion.notifications import RequestNotifier
from erasure_service.deletion.validator import RequestValidator
from erasure_service.errors import (
    AccountNotFoundError,
    LegalHoldError,
    VerificationFailedError,
)
from erasure_service.models.enums import DataCategory, NotificationType, StepId
from erasure_service.scheduling.ticker import Clock
from erasure_service.schemas.deletion import BackupInfo, DeletionRequest, DeletionRequestData

logger = logging.getLogger(__name__)

StepHandler = Callable[[DeletionRequest], Awaitable[None]]


class StepHandlers:
    """Binds every StepId to the collaborator call that performs it."""

    def __init__(
        self,
        *,
        identity_provider: IdentityProvider,
        file_store: FileStore,
        session_store: SessionStore,
        application_data: ApplicationDataStore,
        exporter: DataExporter,
        backup_store: BackupStore,
        notifier: RequestNotifier,
        holds: LegalHoldRegistry,
        validator: RequestValidator,
        clock: Clock,
    ) -> None:
        self._identity = identity_provider
        self._files = file_store
        self._sessions = session_store
        self._app_data = application_data
        self._exporter = exporter
        self._backups = backup_store
        self._notifier = notifier
        self._holds = holds
        self._validator = validator
        self._clock = clock

        self._handlers: dict[StepId, StepHandler] = {
            StepId.VALIDATE_REQUEST: self.validate_request,
            StepId.CREATE_BACKUP: self.create_backup,
            StepId.CLEANUP_SESSIONS: self.cleanup_sessions,
            StepId.CLEANUP_FILES: self.cleanup_files,
            StepId.CLEANUP_APPLICATION_DATA: self.cleanup_application_data,
            StepId.DELETE_IDENTITY_ACCOUNT: self.delete_identity_account,
            StepId.VERIFY_DELETION: self.verify_deletion,
            StepId.SEND_CONFIRMATION: self.send_confirmation,
        }

    def get(self, step_id: StepId) -> StepHandler:
        return self._handlers[step_id]

    # ── Steps ────────────────────────────────────────────────────────

    async def validate_request(self, request: DeletionRequest) -> None:
        """Re-check the request fields and look the subject up at the identity provider.

        A missing account is only a warning: it may already have been deleted.
        """
        self._validator.check_fields(
            request.subject_id,
            DeletionRequestData(confirmation=request.confirmation, reason=request.reason),
        )

        try:
            profile = await self._identity.export_profile(request.subject_id)
        except Exception as exc:
            logger.warning("Could not verify subject %s at identity provider: %s", request.subject_id, exc)
            return

        if profile is None:
            logger.warning(
                "Subject %s not found at identity provider, may have been already deleted",
                request.subject_id,
            )

    async def create_backup(self, request: DeletionRequest) -> None:
        blob = await self._exporter.export_all(request.subject_id)
        now = self._clock.now()
        name = f"backup_{request.subject_id}_{int(now.timestamp() * 1000)}.json"
        location = await self._backups.save(name, blob)
        checksum = hashlib.sha256(blob).hexdigest()

        request.backup = BackupInfo(
            created=True,
            location=location,
            size=len(blob),
            checksum=checksum,
            created_at=now,
        )
        logger.info(
            "Backup created for subject %s (%d bytes, checksum: %s...)",
            request.subject_id,
            len(blob),
            checksum[:8],
        )

    async def cleanup_sessions(self, request: DeletionRequest) -> None:
        self._check_hold(request, DataCategory.SESSIONS)
        terminated = await self._sessions.terminate_user_sessions(request.subject_id)
        request.verification.sessions_deleted = True
        logger.info("Terminated %d sessions for subject %s", terminated, request.subject_id)

    async def cleanup_files(self, request: DeletionRequest) -> None:
        self._check_hold(request, DataCategory.FILES)
        deleted = await self._files.delete_user_files(request.subject_id)
        request.verification.files_deleted = True
        logger.info("Deleted %d files for subject %s", deleted, request.subject_id)

    async def cleanup_application_data(self, request: DeletionRequest) -> None:
        self._check_hold(request, DataCategory.APPLICATION_DATA)
        deleted = await self._app_data.delete_user_data(request.subject_id)
        request.verification.application_data_deleted = True
        logger.info("Deleted %d application records for subject %s", deleted, request.subject_id)

    async def delete_identity_account(self, request: DeletionRequest) -> None:
        try:
            await self._identity.delete_account(request.subject_id)
        except AccountNotFoundError:
            logger.info("Subject %s was already deleted from the identity provider", request.subject_id)
        request.verification.identity_account_deleted = True
        logger.info("Deleted identity provider account for subject %s", request.subject_id)

    async def verify_deletion(self, request: DeletionRequest) -> None:
        """Confirm every destructive step that ran actually took effect."""
        identity_step = request.step(StepId.DELETE_IDENTITY_ACCOUNT)
        if identity_step is not None and identity_step.required:
            account = await self._identity.get_account(request.subject_id)
            if account is not None:
                request.verification.identity_account_deleted = False
                raise VerificationFailedError(
                    "User account still exists at the identity provider"
                )
            request.verification.identity_account_deleted = True

        flags = {
            StepId.CLEANUP_SESSIONS: request.verification.sessions_deleted,
            StepId.CLEANUP_FILES: request.verification.files_deleted,
            StepId.CLEANUP_APPLICATION_DATA: request.verification.application_data_deleted,
        }
        for step_id, confirmed in flags.items():
            step = request.step(step_id)
            if step is not None and step.required and not confirmed:
                raise VerificationFailedError(f"Step {step_id.value} was not confirmed")

        request.verification.verified_at = self._clock.now()
        logger.info("Deletion verification completed for subject %s", request.subject_id)

    async def send_confirmation(self, request: DeletionRequest) -> None:
        await self._notifier.send(request, NotificationType.DELETION_COMPLETED)

    # ── Helpers ──────────────────────────────────────────────────────

    def _check_hold(self, request: DeletionRequest, category: DataCategory) -> None:
        hold = self._holds.get(request.subject_id, category)
        if hold is not None:
            logger.warning(
                "Subject %s %s under legal hold, cleanup blocked",
                request.subject_id,
                category.value,
            )
            raise LegalHoldError(f"{category.value} under legal hold: {hold.reason}")
