"""Audit trail for data mutations."""

from .context import audit_context_from_request, get_client_ip
from .sink import AuditSink, SqlAuditLog

__all__ = ["AuditSink", "SqlAuditLog", "audit_context_from_request", "get_client_ip"]
