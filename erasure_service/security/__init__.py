"""Security & GDPR module — persistent audit trail."""

from erasure_service.security.audit import SqlAuditSink

__all__ = ["SqlAuditSink"]
