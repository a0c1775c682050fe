"""Audit log model.

One row per logically distinct change. ``data.insert`` rows carry only
``new_values``, ``data.update`` rows carry both snapshots and ``data.delete``
rows carry neither but record the identifier.
"""

from sqlalchemy import JSON, Column, DateTime, Index, String

from ..core.config import get_settings_instance
from .base import BaseModel, utc_now


class AuditLogEntry(BaseModel):
    __tablename__ = "audit_log"

    actor_user_id = Column(String(64), nullable=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(200), nullable=False, index=True)
    resource_identifier = Column(String(200), nullable=True)
    previous_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    __table_args__ = (
        Index("ix_audit_log_resource", "resource_type", "resource_identifier"),
        {"schema": get_settings_instance().audit_table_schema},
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLogEntry(event={self.event_type}, resource={self.resource_type}, "
            f"id={self.resource_identifier})>"
        )
