"""Interfaces the erasure pipeline consumes, plus null-object stand-ins.

The orchestrator always receives an object for every capability. When a
capability is not deployed, pass the null object: it reports "nothing to do"
instead of the pipeline branching on ``None``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from erasure_service.schemas.events import SystemEvent

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    async def export_profile(self, subject_id: str) -> dict[str, Any] | None:
        """Full profile for export, or None when the account does not exist."""
        ...

    async def delete_account(self, subject_id: str) -> None:
        """Delete the account. Raises AccountNotFoundError when it is already gone."""
        ...

    async def get_account(self, subject_id: str) -> dict[str, Any] | None:
        """Current account, or None when it does not exist."""
        ...


class FileStore(Protocol):
    async def delete_user_files(self, subject_id: str) -> int: ...


class SessionStore(Protocol):
    async def terminate_user_sessions(self, subject_id: str) -> int: ...


class ApplicationDataStore(Protocol):
    async def delete_user_data(self, subject_id: str) -> int: ...


class DataExporter(Protocol):
    async def export_all(self, subject_id: str) -> bytes: ...


class BackupStore(Protocol):
    async def save(self, name: str, blob: bytes) -> str:
        """Persist the blob and return its location."""
        ...


class Notifier(Protocol):
    async def send(self, request_id: str, event_type: str) -> None: ...


class AuditSink(Protocol):
    async def record(self, event: SystemEvent) -> None:
        """Append an event to the audit trail. Must never raise."""
        ...


# ── Null objects ─────────────────────────────────────────────────────


class NullFileStore:
    async def delete_user_files(self, subject_id: str) -> int:
        logger.debug("No file store configured; nothing to delete for %s", subject_id)
        return 0


class NullSessionStore:
    async def terminate_user_sessions(self, subject_id: str) -> int:
        logger.debug("No session store configured; no sessions for %s", subject_id)
        return 0


class NullApplicationDataStore:
    async def delete_user_data(self, subject_id: str) -> int:
        logger.debug("No application data store configured for %s", subject_id)
        return 0


class NullBackupStore:
    """Keeps nothing; the returned location is only a label."""

    async def save(self, name: str, blob: bytes) -> str:
        return name


class NullNotifier:
    async def send(self, request_id: str, event_type: str) -> None:
        logger.debug("Notification %s for %s dropped (no notifier)", event_type, request_id)


class InMemoryAuditSink:
    """Append-only list of events. Default sink and the one used in tests."""

    def __init__(self) -> None:
        self.events: list[SystemEvent] = []

    async def record(self, event: SystemEvent) -> None:
        self.events.append(event)
