"""Actor resolution and permission dependencies."""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from fastapi import Request

from ..core.exceptions import AuthenticationError, PermissionDeniedError
from ..core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a request."""

    user_id: str
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has_any(self, *permissions: str) -> bool:
        return any(p in self.permissions for p in permissions)


# Record write permission per operation; the record routes and the table permission report share it
RECORD_WRITE_PERMISSIONS = {
    "create": "data.records.insert",
    "update": "data.records.update",
    "delete": "data.records.delete",
}


# Installed on ``app.state.actor_resolver`` by create_app
ActorResolver = Callable[[Request], Actor | None | Awaitable[Actor | None]]


async def get_current_actor(request: Request) -> Actor:
    """Resolve the request's actor or fail with 401."""
    resolver: ActorResolver | None = getattr(request.app.state, "actor_resolver", None)
    if resolver is None:
        raise AuthenticationError("No actor resolver configured")

    actor = resolver(request)
    if inspect.isawaitable(actor):
        actor = await actor
    if actor is None:
        raise AuthenticationError()
    return actor


def require_permission(*any_of: str):
    """Dependency factory: the actor must hold at least one of ``any_of``."""
    required = list(any_of)

    async def permission_checker(request: Request) -> Actor:
        actor = await get_current_actor(request)
        if not actor.has_any(*required):
            logger.warning(
                "Permission denied",
                extra={"user_id": actor.user_id, "required": ",".join(required), "path": request.url.path},
            )
            raise PermissionDeniedError(required)
        return actor

    return permission_checker


def record_write_flags(actor: Actor) -> dict[str, bool]:
    return {op: actor.has_any(permission) for op, permission in RECORD_WRITE_PERMISSIONS.items()}
