"""Tests for the deletion-request HTTP API.

Covers:
- POST /deletion-requests: 202 on success, 400 on validation error, 409 on conflict
- GET /deletion-requests/{id}: snapshot or 404
- POST /deletion-requests/{id}/cancel: 200, 404 unknown, 409 already terminal
- GET /deletion-requests/statistics and /health
- Legal hold routes: apply, list, remove
- Lifespan: startup, shutdown and notification events reach the bus consumers
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from erasure_service.deletion.collaborators import InMemoryAuditSink
from erasure_service.deletion.service import ErasureOrchestrator
from erasure_service.events import event_bus
from erasure_service.integrations.notifications import EventNotifier
from erasure_service.main import app, get_orchestrator
from erasure_service.models.enums import DataCategory
from erasure_service.scheduling.ticker import ManualClock
from erasure_service.schemas.events import EventType

CONFIRMATION = "DELETE_MY_ACCOUNT"


@pytest.fixture()
def orchestrator(make_orchestrator):
    return make_orchestrator()


@pytest.fixture()
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def _submit(client, subject_id="user-1", **overrides):
    body = {"subject_id": subject_id, "reason": "closing account", "confirmation": CONFIRMATION}
    body.update(overrides)
    return client.post("/deletion-requests", json=body, headers={"User-Agent": "pytest-agent"})


# ── Submission ───────────────────────────────────────────────────────


class TestSubmitEndpoint:
    def test_accepted(self, client, orchestrator):
        resp = _submit(client)

        assert resp.status_code == 202
        body = resp.json()
        assert body["status"] == "pending"
        assert len(body["steps"]) == 8
        stored = orchestrator.get_deletion_status(body["request_id"])
        assert stored.user_agent == "pytest-agent"

    def test_bad_confirmation(self, client):
        resp = _submit(client, confirmation="yes please")
        assert resp.status_code == 400
        assert "DELETE_MY_ACCOUNT" in resp.json()["error"]

    def test_duplicate_conflict(self, client):
        first = _submit(client).json()
        resp = _submit(client)

        assert resp.status_code == 409
        assert resp.json()["existing_request_id"] == first["request_id"]

    def test_missing_subject_is_unprocessable(self, client):
        resp = client.post("/deletion-requests", json={"confirmation": CONFIRMATION})
        assert resp.status_code == 422


# ── Status ───────────────────────────────────────────────────────────


class TestStatusEndpoint:
    def test_get_status(self, client):
        request_id = _submit(client).json()["request_id"]

        resp = client.get(f"/deletion-requests/{request_id}")

        assert resp.status_code == 200
        assert resp.json()["request_id"] == request_id
        assert resp.json()["subject_id"] == "user-1"

    def test_unknown(self, client):
        assert client.get("/deletion-requests/del_missing").status_code == 404


# ── Cancellation ─────────────────────────────────────────────────────


class TestCancelEndpoint:
    def test_cancel(self, client):
        request_id = _submit(client).json()["request_id"]

        resp = client.post(f"/deletion-requests/{request_id}/cancel", json={"cancelled_by": "admin"})

        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert client.get(f"/deletion-requests/{request_id}").json()["status"] == "cancelled"

    def test_cancel_twice_conflicts(self, client):
        request_id = _submit(client).json()["request_id"]
        client.post(f"/deletion-requests/{request_id}/cancel", json={"cancelled_by": "admin"})

        resp = client.post(f"/deletion-requests/{request_id}/cancel", json={"cancelled_by": "admin"})

        assert resp.status_code == 409

    def test_cancel_unknown(self, client):
        resp = client.post("/deletion-requests/del_missing/cancel", json={"cancelled_by": "admin"})
        assert resp.status_code == 404


# ── Statistics and health ────────────────────────────────────────────


class TestStatisticsEndpoint:
    def test_statistics(self, client):
        _submit(client)

        resp = client.get("/deletion-requests/statistics")

        assert resp.status_code == 200
        body = resp.json()
        assert body["requests_received"] == 1
        assert body["queue_length"] == 1
        assert body["configuration"]["max_deletion_days"] == 30


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_not_started_is_unavailable(self):
        app.dependency_overrides.clear()
        resp = TestClient(app).get("/deletion-requests/statistics")
        assert resp.status_code == 503


# ── Legal holds ──────────────────────────────────────────────────────


class TestLegalHoldEndpoints:
    def test_apply_list_remove(self, client, orchestrator):
        resp = client.post(
            "/legal-holds",
            json={"subject_id": "user-1", "category": "files", "reason": "litigation"},
        )
        assert resp.status_code == 201
        assert resp.json()["category"] == "files"
        assert orchestrator.is_under_legal_hold("user-1", DataCategory.FILES)

        listed = client.get("/legal-holds/user-1").json()
        assert [hold["category"] for hold in listed] == ["files"]

        resp = client.delete("/legal-holds/user-1/files", params={"reason": "settled"})
        assert resp.status_code == 204
        assert client.get("/legal-holds/user-1").json() == []

    def test_remove_missing_hold(self, client):
        resp = client.delete("/legal-holds/user-1/sessions", params={"reason": "none"})
        assert resp.status_code == 404

    def test_unknown_category_rejected(self, client):
        resp = client.post(
            "/legal-holds",
            json={"subject_id": "user-1", "category": "backups", "reason": "x"},
        )
        assert resp.status_code == 422


# ── Lifespan ─────────────────────────────────────────────────────────


@asynccontextmanager
async def _no_database():
    yield


class TestLifespan:
    def test_bus_consumers_receive_lifecycle_and_notifications(self, identity):
        audit_sink = InMemoryAuditSink()

        def build(sink):
            return ErasureOrchestrator(
                identity_provider=identity,
                notifier=EventNotifier(event_bus),
                audit_sink=sink,
                clock=ManualClock(),
            )

        app.dependency_overrides.clear()
        with (
            patch("erasure_service.main.db_lifespan", _no_database),
            patch("erasure_service.main.SqlAuditSink", return_value=audit_sink),
            patch("erasure_service.main.build_orchestrator", side_effect=build),
            patch("erasure_service.integrations.notifications.logger") as notification_logger,
        ):
            with TestClient(app) as client:
                assert event_bus.running
                request_id = _submit(client).json()["request_id"]

        types = [event.event_type for event in audit_sink.events]
        assert types.count(EventType.SYSTEM_STARTUP) == 1
        assert types[-1] == EventType.SYSTEM_SHUTDOWN
        assert EventType.DELETION_REQUESTED in types
        notifications = [e for e in audit_sink.events if e.event_type == EventType.NOTIFICATION_SENT]
        assert [e.request_id for e in notifications] == [request_id]
        notification_logger.info.assert_called_once()

        assert not event_bus.running
        assert event_bus.handlers_for(EventType.NOTIFICATION_SENT) == []
