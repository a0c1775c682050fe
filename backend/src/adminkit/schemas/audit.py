"""Audit log schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..models.base import utc_now
from .data import default_page_size


class AuditEventType(str, Enum):
    DATA_INSERT = "data.insert"
    DATA_UPDATE = "data.update"
    DATA_DELETE = "data.delete"
    PLUGIN_TASK_FAILED = "plugin.task.failed"


class AuditContext(BaseModel):
    """Who performed a change and from where."""

    model_config = ConfigDict(frozen=True)

    actor_user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


class AuditEvent(BaseModel):
    """One logically distinct change.

    Inserts carry ``new_values`` only, updates carry both snapshots, deletes
    carry neither and only record ``resource_id``.
    """

    model_config = ConfigDict(frozen=True)

    event_type: str
    resource_type: str
    resource_id: str | None = None
    previous_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utc_now)


class AuditLogQuery(BaseModel):
    """Query-string parameters accepted by ``GET /audit/logs``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_type: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    actor_user_id: str | None = None
    search: str | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(default_factory=default_page_size, ge=1)
