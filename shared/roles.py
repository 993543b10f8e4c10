from enum import Enum
from typing import Iterable, Optional


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    OWNER = "OWNER"
    STAFF = "STAFF"


ROLE_LABELS = {
    UserRole.SUPER_ADMIN: "Super Administrador",
    UserRole.OWNER: "Propietario",
    UserRole.STAFF: "Personal",
}

STAFF_ROLES = (UserRole.OWNER, UserRole.STAFF, UserRole.SUPER_ADMIN)


def can_access(user, required_roles: Optional[Iterable] = None) -> bool:
    """
    Decide whether a user may reach something guarded by required_roles.

    No required roles means any authenticated user. Anonymous users
    (None, or objects reporting is_authenticated=False) never pass.
    """
    if user is None or not getattr(user, "is_authenticated", False):
        return False

    required = [UserRole(r).value for r in (required_roles or [])]
    if not required:
        return True

    role = getattr(user, "role", None)
    if isinstance(role, UserRole):
        role = role.value
    return role in required
