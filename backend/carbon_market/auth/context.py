"""
RequestContext: the "who is asking and what can they do" abstraction.

Every authenticated API request gets a RequestContext. It carries:
- user_id: the profile id from the access token's `sub` claim
- role: the role stored on that profile (USER when missing or unknown)

Permissions are never stored on the context; they are always resolved
through the static ROLE_PERMISSIONS table so a context can't drift from it.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException

from carbon_market.auth.permissions import Permission
from carbon_market.auth.roles import Role, get_role_permissions, has_any_permission, has_permission
from carbon_market.auth.routes import can_access_route
from carbon_market.middleware.metrics import access_denied_total


@dataclass(frozen=True)
class RequestContext:
    user_id: str = "anonymous"
    role: Role = Role.USER

    @property
    def permissions(self) -> frozenset[Permission]:
        return get_role_permissions(self.role)

    def has_permission(self, perm: Permission) -> bool:
        return has_permission(self.role, perm)

    def can_access_route(self, route_path: str) -> bool:
        return can_access_route(self.role, route_path)

    def require_permission(self, perm: Permission) -> None:
        """Raise 403 if the caller lacks the given permission."""
        if not self.has_permission(perm):
            access_denied_total.labels(reason="permission").inc()
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions: requires {perm.value}",
            )

    def require_any(self, *perms: Permission) -> None:
        """Raise 403 if the caller lacks ALL of the given permissions."""
        if not has_any_permission(self.role, perms):
            access_denied_total.labels(reason="permission").inc()
            needed = ", ".join(p.value for p in perms)
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions: requires one of [{needed}]",
            )

    @property
    def actor(self) -> str:
        """Identity string for audit logging."""
        return f"{self.role.value}:{self.user_id}"
