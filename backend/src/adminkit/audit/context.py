"""Build an ``AuditContext`` from an inbound request."""

from collections.abc import Mapping

from fastapi import Request

from ..schemas.audit import AuditContext


def get_client_ip(headers: Mapping[str, str], client_host: str | None = None) -> str | None:
    """Extract the client IP, preferring proxy headers over the socket peer.

    ``X-Forwarded-For`` may carry a chain; the first hop is the client.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip() or None
    return client_host


def audit_context_from_request(request: Request, actor_user_id: str | None) -> AuditContext:
    return AuditContext(
        actor_user_id=actor_user_id,
        ip_address=get_client_ip(request.headers, request.client.host if request.client else None),
        user_agent=request.headers.get("user-agent"),
    )
