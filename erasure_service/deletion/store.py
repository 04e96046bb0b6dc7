"""In-memory store for live deletion requests, the FIFO queue, and history.

Every access goes through a single lock. Readers get deep copies, so a
status query never observes a request mid-mutation and can never mutate
the live object. Only the queue processor asks for the live object
(``get_live``).
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime

from erasure_service.schemas.deletion import DeletionRequest

logger = logging.getLogger(__name__)


class DeletionRequestStore:
    """Live requests keyed by id, pending queue, and terminal-request history."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._live: dict[str, DeletionRequest] = {}
        self._queue: deque[str] = deque()
        self._history: list[DeletionRequest] = []

    # ── Live requests ────────────────────────────────────────────────

    def create(self, request: DeletionRequest) -> None:
        """Register a new request and append it to the queue."""
        with self._lock:
            if request.request_id in self._live:
                msg = f"Duplicate deletion request id: {request.request_id}"
                raise ValueError(msg)
            self._live[request.request_id] = request
            self._queue.append(request.request_id)

    def get(self, request_id: str) -> DeletionRequest | None:
        """Snapshot of a live or historical request."""
        with self._lock:
            request = self._live.get(request_id)
            if request is None:
                request = next(
                    (r for r in self._history if r.request_id == request_id), None
                )
            return request.model_copy(deep=True) if request is not None else None

    def get_live(self, request_id: str) -> DeletionRequest | None:
        """The mutable live object — queue processor only."""
        with self._lock:
            return self._live.get(request_id)

    def list_active_by_subject(self, subject_id: str) -> list[DeletionRequest]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._live.values()
                if r.subject_id == subject_id and r.status.is_active
            ]

    def move_to_history(self, request_id: str) -> DeletionRequest:
        """Freeze a terminal request into history and drop it from the live map."""
        with self._lock:
            request = self._live.pop(request_id)
            if not request.status.is_terminal:
                self._live[request_id] = request
                msg = f"Request {request_id} is {request.status.value}, not terminal"
                raise ValueError(msg)
            self._remove_from_queue(request_id)
            frozen = request.model_copy(deep=True)
            self._history.append(frozen)
            return frozen.model_copy(deep=True)

    # ── Queue ────────────────────────────────────────────────────────

    def dequeue(self) -> str | None:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    def remove_from_queue(self, request_id: str) -> bool:
        with self._lock:
            return self._remove_from_queue(request_id)

    def _remove_from_queue(self, request_id: str) -> bool:
        try:
            self._queue.remove(request_id)
        except ValueError:
            return False
        return True

    # ── History ──────────────────────────────────────────────────────

    def latest_history_for_subject(self, subject_id: str) -> DeletionRequest | None:
        """Most recently requested historical entry for the subject."""
        with self._lock:
            entries = [r for r in self._history if r.subject_id == subject_id]
            if not entries:
                return None
            latest = max(entries, key=lambda r: r.requested_at)
            return latest.model_copy(deep=True)

    def prune_history(self, cutoff: datetime) -> int:
        """Drop history entries requested before ``cutoff``. Returns count removed."""
        with self._lock:
            kept = [r for r in self._history if r.requested_at >= cutoff]
            removed = len(self._history) - len(kept)
            self._history = kept
            return removed

    # ── Counts ───────────────────────────────────────────────────────

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._live)

    @property
    def queue_length(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def history_count(self) -> int:
        with self._lock:
            return len(self._history)
