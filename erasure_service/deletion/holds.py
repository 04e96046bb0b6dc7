"""Legal holds — freeze a data category for a subject regardless of erasure.

A hold is keyed by (subject_id, category). An expired hold no longer
blocks; it is dropped the next time it is looked up.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from erasure_service.models.enums import DataCategory
from erasure_service.scheduling.ticker import Clock
from erasure_service.schemas.deletion import LegalHold

logger = logging.getLogger(__name__)


class LegalHoldRegistry:
    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._holds: dict[tuple[str, DataCategory], LegalHold] = {}

    def apply(
        self,
        subject_id: str,
        category: DataCategory,
        reason: str,
        expires_at: datetime | None = None,
    ) -> LegalHold:
        hold = LegalHold(
            subject_id=subject_id,
            category=category,
            reason=reason,
            applied_at=self._clock.now(),
            expires_at=expires_at,
        )
        with self._lock:
            self._holds[(subject_id, category)] = hold
        logger.info("Legal hold applied: %s (%s) - %s", subject_id, category.value, reason)
        return hold.model_copy()

    def remove(self, subject_id: str, category: DataCategory) -> bool:
        with self._lock:
            removed = self._holds.pop((subject_id, category), None)
        if removed is not None:
            logger.info("Legal hold removed: %s (%s)", subject_id, category.value)
        return removed is not None

    def get(self, subject_id: str, category: DataCategory) -> LegalHold | None:
        """Active hold for the key, or None (expired holds are dropped)."""
        key = (subject_id, category)
        with self._lock:
            hold = self._holds.get(key)
            if hold is None:
                return None
            if not hold.is_active(self._clock.now()):
                del self._holds[key]
                logger.info("Legal hold expired: %s (%s)", subject_id, category.value)
                return None
            return hold.model_copy()

    def is_under_hold(self, subject_id: str, category: DataCategory) -> bool:
        return self.get(subject_id, category) is not None

    def list_for_subject(self, subject_id: str) -> list[LegalHold]:
        return [
            hold
            for category in DataCategory
            if (hold := self.get(subject_id, category)) is not None
        ]
