"""Authenticated request context."""

from dataclasses import dataclass
from uuid import UUID

from autocontrol.core.permissions import Permission, has_permission
from autocontrol.models.user import UserRole


@dataclass(frozen=True)
class TenantContext:
    """
    Identity of the caller, resolved from a verified access token.

    Every tenant-scoped query takes `organization_id` from here, never from
    client input.
    """

    user_id: UUID
    organization_id: UUID
    role: UserRole

    def can(self, permission: Permission) -> bool:
        return has_permission(self.role, permission)
