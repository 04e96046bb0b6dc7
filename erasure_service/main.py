"""FastAPI application entry point — wires the erasure orchestrator together.

Usage:
    python -m erasure_service.main

Serves the deletion-request API and runs the queue processor and history
cleanup tickers for the lifetime of the app.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from erasure_service.config import settings
from erasure_service.db.engine import db_lifespan, redis_client
from erasure_service.deletion.collaborators import AuditSink
from erasure_service.deletion.service import ErasureOrchestrator
from erasure_service.errors import ConflictError, RequestNotFoundError, ValidationError
from erasure_service.events import EventBus, EventHandler, event_bus
from erasure_service.integrations.identity.client import HttpIdentityProvider
from erasure_service.integrations.notifications import EventNotifier, log_notification
from erasure_service.integrations.storage import LocalBackupStore, LocalFileStore, RedisSessionStore
from erasure_service.models.enums import DataCategory
from erasure_service.schemas.deletion import (
    CancelResult,
    DeletionRequest,
    DeletionRequestData,
    DeletionStatistics,
    LegalHold,
    SubmitResult,
)
from erasure_service.schemas.events import EventType, SystemEvent
from erasure_service.security.audit import SqlAuditSink

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

_orchestrator: ErasureOrchestrator | None = None


def build_orchestrator(audit_sink: AuditSink) -> ErasureOrchestrator:
    """Production wiring of every collaborator."""
    if not settings.identity.identity_api_url:
        logger.warning("IDENTITY_API_URL not set — identity provider steps will fail")

    return ErasureOrchestrator(
        identity_provider=HttpIdentityProvider(),
        file_store=LocalFileStore(),
        session_store=RedisSessionStore(redis_client),
        backup_store=LocalBackupStore(),
        notifier=EventNotifier(event_bus),
        audit_sink=audit_sink,
        config=settings.erasure,
    )


def register_subscribers(bus: EventBus, audit_sink: AuditSink) -> list[EventHandler]:
    """Attach the bus consumers; returns the handlers so shutdown can detach them."""
    bus.subscribe(
        audit_sink.record,
        [EventType.NOTIFICATION_SENT, EventType.SYSTEM_STARTUP, EventType.SYSTEM_SHUTDOWN],
    )
    bus.subscribe(log_notification, [EventType.NOTIFICATION_SENT])
    return [audit_sink.record, log_notification]


def get_orchestrator() -> ErasureOrchestrator:
    if _orchestrator is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Erasure service not started")
    return _orchestrator


# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    global _orchestrator
    logger.info("Starting erasure service (env=%s)", settings.environment)

    async with db_lifespan():
        logger.info("Database initialized")

        audit_sink = SqlAuditSink()
        handlers = register_subscribers(event_bus, audit_sink)
        event_bus.start()

        _orchestrator = build_orchestrator(audit_sink)
        _orchestrator.start()
        await event_bus.emit(SystemEvent(
            event_type=EventType.SYSTEM_STARTUP,
            data={"environment": settings.environment},
            source_module="main",
        ))

        try:
            yield
        finally:
            logger.info("Shutting down erasure service...")
            await _orchestrator.stop()
            _orchestrator = None
            await event_bus.emit(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, source_module="main"))
            await event_bus.stop()
            for handler in handlers:
                event_bus.unsubscribe(handler)

    logger.info("Erasure service shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Erasure Service API",
    description="Right-to-erasure request orchestration",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


@app.exception_handler(ConflictError)
async def _conflict_error(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "error": str(exc),
            "existing_request_id": exc.existing_request_id,
            "remaining_days": exc.remaining_days,
        },
    )


@app.exception_handler(RequestNotFoundError)
async def _not_found_error(request: Request, exc: RequestNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(exc)})


class SubmitBody(BaseModel):
    subject_id: str
    reason: str | None = None
    confirmation: str | None = None
    requested_by: str | None = None


class CancelBody(BaseModel):
    cancelled_by: str


class LegalHoldBody(BaseModel):
    subject_id: str
    category: DataCategory
    reason: str
    expires_at: datetime | None = None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "environment": settings.environment}


@app.post("/deletion-requests", status_code=status.HTTP_202_ACCEPTED)
async def submit_deletion_request(
    body: SubmitBody,
    request: Request,
    orchestrator: ErasureOrchestrator = Depends(get_orchestrator),
) -> SubmitResult:
    data = DeletionRequestData(
        reason=body.reason,
        confirmation=body.confirmation,
        requested_by=body.requested_by,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return await orchestrator.submit_deletion_request(body.subject_id, data)


@app.get("/deletion-requests/statistics")
async def get_statistics(
    orchestrator: ErasureOrchestrator = Depends(get_orchestrator),
) -> DeletionStatistics:
    return orchestrator.get_statistics()


@app.get("/deletion-requests/{request_id}")
async def get_deletion_status(
    request_id: str,
    orchestrator: ErasureOrchestrator = Depends(get_orchestrator),
) -> DeletionRequest:
    snapshot = orchestrator.get_deletion_status(request_id)
    if snapshot is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Deletion request not found")
    return snapshot


@app.post("/deletion-requests/{request_id}/cancel")
async def cancel_deletion_request(
    request_id: str,
    body: CancelBody,
    orchestrator: ErasureOrchestrator = Depends(get_orchestrator),
) -> CancelResult:
    return await orchestrator.cancel_deletion_request(request_id, body.cancelled_by)


@app.post("/legal-holds", status_code=status.HTTP_201_CREATED)
async def apply_legal_hold(
    body: LegalHoldBody,
    orchestrator: ErasureOrchestrator = Depends(get_orchestrator),
) -> LegalHold:
    return await orchestrator.apply_legal_hold(body.subject_id, body.category, body.reason, body.expires_at)


@app.get("/legal-holds/{subject_id}")
async def list_legal_holds(
    subject_id: str,
    orchestrator: ErasureOrchestrator = Depends(get_orchestrator),
) -> list[LegalHold]:
    return orchestrator.list_legal_holds(subject_id)


@app.delete("/legal-holds/{subject_id}/{category}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_legal_hold(
    subject_id: str,
    category: DataCategory,
    reason: str,
    orchestrator: ErasureOrchestrator = Depends(get_orchestrator),
) -> None:
    if not await orchestrator.remove_legal_hold(subject_id, category, reason):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Legal hold not found")


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "erasure_service.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
