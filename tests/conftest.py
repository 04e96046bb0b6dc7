"""Shared fakes for the erasure workflow tests."""

from __future__ import annotations

import pytest

from erasure_service.config import ErasureSettings
from erasure_service.deletion.collaborators import InMemoryAuditSink
from erasure_service.deletion.service import ErasureOrchestrator
from erasure_service.errors import AccountNotFoundError
from erasure_service.scheduling.ticker import ManualClock

CONFIRMATION = "DELETE_MY_ACCOUNT"


class FakeIdentityProvider:
    """In-memory identity provider with scriptable failures."""

    def __init__(self, subjects=("user-1", "user-2", "user-3")):
        self.accounts = {s: {"id": s, "email": f"{s}@example.com"} for s in subjects}
        self.delete_errors: list[Exception] = []
        self.keep_after_delete = False
        self.delete_calls: list[str] = []

    async def export_profile(self, subject_id):
        return self.accounts.get(subject_id)

    async def delete_account(self, subject_id):
        self.delete_calls.append(subject_id)
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        if subject_id not in self.accounts:
            raise AccountNotFoundError(subject_id)
        if not self.keep_after_delete:
            del self.accounts[subject_id]

    async def get_account(self, subject_id):
        return self.accounts.get(subject_id)


class RecordingStore:
    """Session/file/application-data store that records what it was asked to delete."""

    def __init__(self):
        self.calls: list[str] = []

    async def terminate_user_sessions(self, subject_id):
        self.calls.append(subject_id)
        return 2

    async def delete_user_files(self, subject_id):
        self.calls.append(subject_id)
        return 3

    async def delete_user_data(self, subject_id):
        self.calls.append(subject_id)
        return 4


class RecordingBackupStore:
    def __init__(self):
        self.saved: dict[str, bytes] = {}

    async def save(self, name, blob):
        self.saved[name] = blob
        return f"/backups/{name}"


class RecordingNotifier:
    def __init__(self, fail=False):
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    async def send(self, request_id, event_type):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append((request_id, event_type))


@pytest.fixture()
def identity():
    return FakeIdentityProvider()


@pytest.fixture()
def clock():
    return ManualClock(auto_advance=True)


@pytest.fixture()
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def backup_store():
    return RecordingBackupStore()


@pytest.fixture()
def file_store():
    return RecordingStore()


@pytest.fixture()
def session_store():
    return RecordingStore()


@pytest.fixture()
def app_store():
    return RecordingStore()


@pytest.fixture()
def make_orchestrator(identity, clock, audit_sink, notifier, backup_store, file_store, session_store, app_store):
    """Factory building an orchestrator on the fakes above; keyword args override ErasureSettings."""

    def _make(**config):
        return ErasureOrchestrator(
            identity_provider=identity,
            file_store=file_store,
            session_store=session_store,
            application_data=app_store,
            backup_store=backup_store,
            notifier=notifier,
            audit_sink=audit_sink,
            config=ErasureSettings(**config),
            clock=clock,
        )

    return _make
