"""Pre-conditions a deletion request must meet before it is accepted.

Pure checks: the validator reads the store and the clock but never mutates
anything. The orchestrator creates and enqueues the request on success.
"""

from __future__ import annotations

import logging
import math

from erasure_service.config import ErasureSettings
from erasure_service.deletion.store import DeletionRequestStore
from erasure_service.errors import ConflictError, ValidationError
from erasure_service.scheduling.ticker import Clock
from erasure_service.schemas.deletion import DeletionRequestData

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 24 * 60 * 60


class RequestValidator:
    def __init__(self, config: ErasureSettings, store: DeletionRequestStore, clock: Clock) -> None:
        self._config = config
        self._store = store
        self._clock = clock

    def validate(self, subject_id: str, data: DeletionRequestData) -> None:
        """Raise ValidationError or ConflictError if the request may not proceed."""
        self.check_fields(subject_id, data)
        self.check_conflicts(subject_id)
        logger.debug("Deletion request validation passed for subject %s", subject_id)

    def check_fields(self, subject_id: str, data: DeletionRequestData) -> None:
        """Subject id, confirmation phrase and reason checks."""
        if not isinstance(subject_id, str) or not subject_id.strip():
            raise ValidationError("Invalid subject ID provided")

        if self._config.enable_deletion_confirmation:
            phrase = self._config.confirmation_phrase
            if data.confirmation != phrase:
                raise ValidationError(
                    f'Account deletion confirmation required. Must be exactly "{phrase}"'
                )

        if self._config.require_deletion_reason:
            if not data.reason or not data.reason.strip():
                raise ValidationError("Deletion reason is required")
            if len(data.reason) > self._config.max_reason_length:
                raise ValidationError(
                    f"Deletion reason must not exceed {self._config.max_reason_length} characters"
                )

    def check_conflicts(self, subject_id: str) -> None:
        """Single active request per subject, then the cooldown since the last one."""
        active = self._store.list_active_by_subject(subject_id)
        if active:
            existing = active[0].request_id
            raise ConflictError(
                f"Account deletion already in progress (request ID: {existing})",
                existing_request_id=existing,
            )

        if not self._config.enable_cooldown_period:
            return

        latest = self._store.latest_history_for_subject(subject_id)
        if latest is None:
            return

        elapsed = (self._clock.now() - latest.requested_at).total_seconds()
        cooldown = self._config.cooldown_days * _SECONDS_PER_DAY
        if elapsed < cooldown:
            remaining_days = math.ceil((cooldown - elapsed) / _SECONDS_PER_DAY)
            raise ConflictError(
                f"Cooldown period active. Please wait {remaining_days} days "
                "before requesting deletion again",
                existing_request_id=latest.request_id,
                remaining_days=remaining_days,
            )
