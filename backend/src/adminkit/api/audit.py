"""Audit log API endpoints."""

from fastapi import APIRouter, Depends, Query

from ..audit.sink import SqlAuditLog
from ..auth.permissions import Actor, require_permission
from ..core.response import AdminKitResponse
from ..schemas.audit import AuditEventType, AuditLogQuery
from ..schemas.data import parse_request
from .dependencies import get_audit_log

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/logs", summary="Search the audit log")
async def list_audit_logs(
    event_type: str | None = Query(None, description=f"e.g. {', '.join(t.value for t in AuditEventType)}"),
    resource_type: str | None = Query(None, description="'<schema>.<table>'"),
    resource_id: str | None = Query(None),
    actor_user_id: str | None = Query(None),
    search: str | None = Query(None),
    page: int = Query(1),
    limit: int | None = Query(None, description="Defaults to ADMINKIT_DATA_DEFAULT_PAGE_SIZE"),
    actor: Actor = Depends(require_permission("audit.read")),
    audit_log: SqlAuditLog = Depends(get_audit_log),
):
    """Newest first. Filters are exact matches; ``search`` matches any text column."""
    params = parse_request(
        AuditLogQuery,
        {
            "event_type": event_type,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "actor_user_id": actor_user_id,
            "search": search,
            "page": page,
            **({"limit": limit} if limit is not None else {}),
        },
    )
    return AdminKitResponse.success(await audit_log.search(params))
