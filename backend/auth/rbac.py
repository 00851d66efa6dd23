"""Role checks applied after authentication."""

from collections.abc import Iterable

from fastapi import Depends

from backend.auth.dependencies import Identity, get_current_user
from backend.core.errors import AuthorizationError
from backend.models.user import UserRole


def authorize(identity: Identity, allowed_roles: Iterable[str]) -> bool:
    return identity.role in allowed_roles


class RoleGate:
    """FastAPI dependency that admits only the configured roles.

    Usage:
        @router.post("/", dependencies=[Depends(require_admin)])
    """

    def __init__(self, allowed_roles: frozenset[str]) -> None:
        self.allowed_roles = frozenset(allowed_roles)

    def __call__(self, identity: Identity = Depends(get_current_user)) -> Identity:
        if not authorize(identity, self.allowed_roles):
            raise AuthorizationError()
        return identity


require_admin = RoleGate(frozenset({UserRole.ADMIN.value}))
