"""SQLAlchemy models owned by adminkit."""

from .audit_log import AuditLogEntry
from .plugin_storage import PluginStorageEntry

__all__ = ["AuditLogEntry", "PluginStorageEntry"]
