"""
Role checks.

Every role decision in the service layer goes through these helpers so the
rules live in one place. Roles come from the user profile, never from the
client.
"""

from ceodesk.core.exceptions import ForbiddenError
from ceodesk.models.auth import ELEVATED_ROLES


def is_elevated(actor) -> bool:
    return actor is not None and actor.role_code in ELEVATED_ROLES


def require_role(actor, roles, action: str) -> None:
    """Raise ForbiddenError unless ``actor.role_code`` is one of ``roles``."""
    if actor.role_code not in roles:
        raise ForbiddenError(action, required_roles=roles, actor_role=actor.role_code)


def require_elevated(actor, action: str) -> None:
    require_role(actor, ELEVATED_ROLES, action)


def require_owner_or_elevated(actor, owner_id, action: str) -> None:
    """Requester-owned resources: the owner or a CEO/ADMIN may act."""
    if actor.id != owner_id and not is_elevated(actor):
        raise ForbiddenError(
            action,
            actor_role=actor.role_code,
            reason=f"Only the requester or CEO/ADMIN can {action}",
        )
