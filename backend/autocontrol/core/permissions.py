"""Role to permission mapping."""

from enum import Enum

from autocontrol.models.user import UserRole


class Permission(str, Enum):
    """Operations gated by role."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    MANAGE_USERS = "manage_users"
    MANAGE_ORG = "manage_org"


ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.ADMIN: frozenset(Permission),
    UserRole.USER: frozenset({Permission.READ, Permission.WRITE}),
    UserRole.READ_ONLY: frozenset({Permission.READ}),
}


def has_permission(role: UserRole, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, frozenset())
