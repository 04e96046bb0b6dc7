"""Tests for the audit trail and the SQL audit sink.

Covers:
- Request, step and system events carry the right context
- A failing sink never breaks the workflow
- SqlAuditSink writes one AuditLog row per event and swallows DB errors
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from erasure_service.deletion.audit import AuditTrail
from erasure_service.deletion.collaborators import InMemoryAuditSink
from erasure_service.models.audit import AuditLog
from erasure_service.models.enums import StepId
from erasure_service.scheduling.ticker import ManualClock
from erasure_service.schemas.deletion import DeletionRequestData
from erasure_service.schemas.events import EventType, SystemEvent
from erasure_service.security.audit import SqlAuditSink

# ── Helpers ──────────────────────────────────────────────────────────


def _make_session_factory(session):
    """Build a mock async_sessionmaker yielding the given session."""
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


def _make_session():
    session = MagicMock()
    session.add = MagicMock()
    session.commit = AsyncMock()
    return session


# ── AuditTrail ───────────────────────────────────────────────────────


class TestAuditTrail:
    @pytest.mark.asyncio()
    async def test_request_and_step_events(self, make_orchestrator, audit_sink):
        orchestrator = make_orchestrator()
        result = await orchestrator.submit_deletion_request(
            "user-1", DeletionRequestData(reason="bye", confirmation="DELETE_MY_ACCOUNT")
        )
        request = orchestrator.store.get_live(result.request_id)

        await orchestrator.audit.step_event(
            EventType.STEP_STARTED, request, request.step(StepId.CREATE_BACKUP)
        )

        requested, step_started = audit_sink.events
        assert requested.event_type == EventType.DELETION_REQUESTED
        assert requested.actor_id == "user-1"
        assert requested.data == {"status": "pending", "reason": "bye"}
        assert step_started.step_id == "create_backup"
        assert step_started.subject_id == "user-1"
        assert step_started.data == {"step_status": "pending", "retry_count": 0}

    @pytest.mark.asyncio()
    async def test_system_event(self):
        sink = InMemoryAuditSink()
        clock = ManualClock()

        await AuditTrail(sink, clock).system_event(EventType.SYSTEM_MAINTENANCE, removed=3)

        (event,) = sink.events
        assert event.request_id is None
        assert event.timestamp == clock.now()
        assert event.data == {"removed": 3}

    @pytest.mark.asyncio()
    async def test_failing_sink_swallowed(self):
        sink = AsyncMock()
        sink.record = AsyncMock(side_effect=RuntimeError("disk full"))

        await AuditTrail(sink, ManualClock()).system_event(EventType.SYSTEM_MAINTENANCE)

        sink.record.assert_awaited_once()


# ── SqlAuditSink ─────────────────────────────────────────────────────


class TestSqlAuditSink:
    @pytest.mark.asyncio()
    async def test_persists_event(self):
        session = _make_session()
        event = SystemEvent(
            event_type=EventType.STEP_FAILED,
            request_id="del_1",
            subject_id="user-1",
            step_id="cleanup_files",
            data={"error": "boom"},
            source_module="deletion.executor",
        )

        with patch("erasure_service.security.audit.async_session_factory", _make_session_factory(session)):
            await SqlAuditSink().record(event)

        row = session.add.call_args.args[0]
        assert isinstance(row, AuditLog)
        assert row.event_type == "gdpr.step_failed"
        assert row.request_id == "del_1"
        assert row.step_id == "cleanup_files"
        assert row.data["error"] == "boom"
        assert row.data["event_id"] == str(event.id)
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_db_error_swallowed(self):
        session = _make_session()
        session.commit = AsyncMock(side_effect=RuntimeError("connection refused"))

        with patch("erasure_service.security.audit.async_session_factory", _make_session_factory(session)):
            await SqlAuditSink().record(SystemEvent(event_type=EventType.SYSTEM_STARTUP))

        session.commit.assert_awaited_once()
