"""Aggregate counters for the deletion workflow."""

from __future__ import annotations

import threading

from erasure_service.schemas.deletion import DeletionStatistics


class StatisticsCollector:
    """Thread-safe counters; ``snapshot`` returns an independent copy."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats = DeletionStatistics()

    def request_received(self) -> None:
        with self._lock:
            self._stats.requests_received += 1

    def request_processed(self) -> None:
        with self._lock:
            self._stats.requests_processed += 1

    def request_completed(self, processing_time: float) -> None:
        with self._lock:
            self._stats.requests_completed += 1
            self._stats.total_processing_time += processing_time
            self._stats.average_processing_time = round(
                self._stats.total_processing_time / self._stats.requests_completed, 3
            )

    def request_failed(self) -> None:
        with self._lock:
            self._stats.requests_failed += 1

    def request_cancelled(self) -> None:
        with self._lock:
            self._stats.requests_cancelled += 1

    def request_overdue(self) -> None:
        with self._lock:
            self._stats.requests_overdue += 1

    def snapshot(self) -> DeletionStatistics:
        with self._lock:
            return self._stats.model_copy(deep=True)
