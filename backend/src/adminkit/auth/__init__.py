"""Permission checks for API routes.

Identity is resolved by an external collaborator; adminkit only asks whether
the resolved actor holds a permission.
"""

from .permissions import Actor, ActorResolver, get_current_actor, require_permission

__all__ = ["Actor", "ActorResolver", "get_current_actor", "require_permission"]
