"""Tests for DeletionRequestStore — live map, FIFO queue, and history."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from erasure_service.config import ErasureSettings
from erasure_service.deletion.catalog import build_step_catalog
from erasure_service.deletion.store import DeletionRequestStore
from erasure_service.models.enums import DeletionRequestStatus
from erasure_service.schemas.deletion import DeletionRequest, RequestMetadata

NOW = datetime(2026, 1, 1, tzinfo=UTC)


# ── Helpers ──────────────────────────────────────────────────────────


def _make_request(request_id="del_1", subject_id="user-1", requested_at=NOW):
    return DeletionRequest(
        request_id=request_id,
        subject_id=subject_id,
        reason="closing account",
        requested_at=requested_at,
        requested_by=subject_id,
        steps=[d.instantiate() for d in build_step_catalog(ErasureSettings())],
        metadata=RequestMetadata(
            estimated_completion_time=requested_at + timedelta(hours=4),
            deadline=requested_at + timedelta(days=30),
        ),
    )


def _finish(store, request_id, status=DeletionRequestStatus.COMPLETED):
    store.get_live(request_id).status = status
    return store.move_to_history(request_id)


# ── Live requests ────────────────────────────────────────────────────


class TestCreateAndGet:
    def test_create_enqueues(self):
        store = DeletionRequestStore()
        store.create(_make_request())
        assert store.queue_length == 1
        assert store.dequeue() == "del_1"
        assert store.active_count == 1

    def test_duplicate_id_rejected(self):
        store = DeletionRequestStore()
        store.create(_make_request())
        with pytest.raises(ValueError, match="Duplicate"):
            store.create(_make_request())

    def test_get_returns_snapshot(self):
        store = DeletionRequestStore()
        store.create(_make_request())
        snapshot = store.get("del_1")
        snapshot.status = DeletionRequestStatus.FAILED
        snapshot.steps[0].error = "tampered"
        live = store.get_live("del_1")
        assert live.status == DeletionRequestStatus.PENDING
        assert live.steps[0].error is None

    def test_get_unknown(self):
        assert DeletionRequestStore().get("nope") is None

    def test_list_active_by_subject(self):
        store = DeletionRequestStore()
        store.create(_make_request("del_1", "user-1"))
        store.create(_make_request("del_2", "user-2"))
        active = store.list_active_by_subject("user-1")
        assert [r.request_id for r in active] == ["del_1"]


# ── Queue ────────────────────────────────────────────────────────────


class TestQueue:
    def test_fifo(self):
        store = DeletionRequestStore()
        store.create(_make_request("del_1", "user-1"))
        store.create(_make_request("del_2", "user-2"))
        assert store.dequeue() == "del_1"
        assert store.dequeue() == "del_2"
        assert store.dequeue() is None

    def test_remove_from_queue(self):
        store = DeletionRequestStore()
        store.create(_make_request())
        assert store.remove_from_queue("del_1") is True
        assert store.remove_from_queue("del_1") is False
        assert store.queue_length == 0


# ── History ──────────────────────────────────────────────────────────


class TestHistory:
    def test_move_to_history(self):
        store = DeletionRequestStore()
        store.create(_make_request())
        frozen = _finish(store, "del_1")
        assert frozen.status == DeletionRequestStatus.COMPLETED
        assert store.get_live("del_1") is None
        assert store.get("del_1").status == DeletionRequestStatus.COMPLETED
        assert store.history_count == 1
        assert store.queue_length == 0

    def test_non_terminal_cannot_move(self):
        store = DeletionRequestStore()
        store.create(_make_request())
        with pytest.raises(ValueError, match="not terminal"):
            store.move_to_history("del_1")
        assert store.get_live("del_1") is not None

    def test_history_entry_is_frozen(self):
        store = DeletionRequestStore()
        store.create(_make_request())
        live = store.get_live("del_1")
        _finish(store, "del_1")
        live.error = "late mutation"
        assert store.get("del_1").error is None

    def test_latest_for_subject(self):
        store = DeletionRequestStore()
        store.create(_make_request("del_old", requested_at=NOW - timedelta(days=20)))
        _finish(store, "del_old")
        store.create(_make_request("del_new", requested_at=NOW - timedelta(days=2)))
        _finish(store, "del_new", DeletionRequestStatus.CANCELLED)
        assert store.latest_history_for_subject("user-1").request_id == "del_new"
        assert store.latest_history_for_subject("user-2") is None

    def test_prune_by_requested_at(self):
        store = DeletionRequestStore()
        store.create(_make_request("del_old", requested_at=NOW - timedelta(days=100)))
        _finish(store, "del_old")
        store.create(_make_request("del_new", "user-2", requested_at=NOW - timedelta(days=10)))
        _finish(store, "del_new")

        removed = store.prune_history(NOW - timedelta(days=90))

        assert removed == 1
        assert store.get("del_old") is None
        assert store.get("del_new") is not None
