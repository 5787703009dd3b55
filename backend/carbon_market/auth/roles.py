"""
Role definitions: which bundles of permissions make up each role.

Higher roles are built from the lower ones by explicit set union, so the
inheritance holds statically:

    USER ⊂ ADMIN ⊂ SUPER_ADMIN
    VERIFIER ⊂ ADMIN

The tables are frozen at import time. Every lookup helper here is total:
unknown roles or permissions fail closed instead of raising.
"""

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from carbon_market.auth.permissions import Permission


class Role(str, Enum):
    USER = "user"
    VERIFIER = "verifier"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# ── User: own projects, buying/selling credits, wallet ──
_USER_PERMS: frozenset[Permission] = frozenset({
    Permission.VIEW_DASHBOARD,
    Permission.VIEW_OWN_PROFILE,
    Permission.EDIT_OWN_PROFILE,
    Permission.CREATE_PROJECTS,
    Permission.VIEW_OWN_PROJECTS,
    Permission.EDIT_OWN_PROJECTS,
    Permission.DELETE_OWN_PROJECTS,
    Permission.VIEW_MARKETPLACE,
    Permission.PURCHASE_CREDITS,
    Permission.CREATE_CREDIT_LISTINGS,
    Permission.MANAGE_OWN_LISTINGS,
    Permission.VIEW_OWN_PORTFOLIO,
    Permission.RETIRE_CREDITS,
    Permission.VIEW_CERTIFICATES,
    Permission.VIEW_RECEIPTS,
    Permission.MANAGE_WALLET,
    Permission.VIEW_OWN_TRANSACTIONS,
})

# ── Verifier: reviews submitted projects, no wallet ──
_VERIFIER_PERMS: frozenset[Permission] = frozenset({
    Permission.VIEW_DASHBOARD,
    Permission.VIEW_OWN_PROFILE,
    Permission.EDIT_OWN_PROFILE,
    Permission.VIEW_ALL_PROJECTS,
    Permission.VERIFY_PROJECTS,
    Permission.ADD_VERIFICATION_NOTES,
    Permission.VIEW_VERIFICATION_HISTORY,
    Permission.VIEW_MARKETPLACE,
})

# ── Admin: user + verifier + platform management ──
_ADMIN_PERMS: frozenset[Permission] = _USER_PERMS | _VERIFIER_PERMS | {
    Permission.MANAGE_PROJECTS,
    Permission.MANAGE_MARKETPLACE,
    Permission.VIEW_ALL_TRANSACTIONS,
    Permission.VIEW_ADMIN_PANEL,
    Permission.MANAGE_USERS,
    Permission.VIEW_ALL_USERS,
    Permission.VIEW_AUDIT_LOGS,
    Permission.VIEW_ANALYTICS,
}

# ── Super admin: admin + system configuration ──
_SUPER_ADMIN_PERMS: frozenset[Permission] = _ADMIN_PERMS | {
    Permission.MANAGE_SYSTEM_SETTINGS,
    Permission.MANAGE_ROLES,
}


ROLE_PERMISSIONS: Mapping[Role, frozenset[Permission]] = MappingProxyType({
    Role.USER: _USER_PERMS,
    Role.VERIFIER: _VERIFIER_PERMS,
    Role.ADMIN: _ADMIN_PERMS,
    Role.SUPER_ADMIN: _SUPER_ADMIN_PERMS,
})

ROLE_DISPLAY_NAMES: Mapping[Role, str] = MappingProxyType({
    Role.USER: "User",
    Role.VERIFIER: "Verifier",
    Role.ADMIN: "Administrator",
    Role.SUPER_ADMIN: "Super Administrator",
})

ADMIN_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


def parse_role(value: Any) -> Role | None:
    """Return the Role for an enum member or its string value, else None."""
    try:
        return Role(value)
    except (ValueError, TypeError):
        return None


def parse_permission(value: Any) -> Permission | None:
    try:
        return Permission(value)
    except (ValueError, TypeError):
        return None


def get_role_permissions(role: Any) -> frozenset[Permission]:
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return ROLE_PERMISSIONS[parsed]


def has_permission(role: Any, permission: Any) -> bool:
    perm = parse_permission(permission)
    if perm is None:
        return False
    return perm in get_role_permissions(role)


def has_any_permission(role: Any, permissions: Iterable[Any] | None) -> bool:
    """True if the role holds at least one of `permissions`. An empty set gives False."""
    return any(has_permission(role, p) for p in (permissions or ()))


def has_all_permissions(role: Any, permissions: Iterable[Any] | None) -> bool:
    """
    True if the role holds every one of `permissions`.

    An empty requirement is unsatisfiable: it returns False rather than the
    vacuous True of `all([])`.
    """
    required = tuple(permissions or ())
    if not required:
        return False
    return all(has_permission(role, p) for p in required)


def is_admin(role: Any) -> bool:
    return parse_role(role) in ADMIN_ROLES


def is_super_admin(role: Any) -> bool:
    return parse_role(role) is Role.SUPER_ADMIN


def is_verifier(role: Any) -> bool:
    return parse_role(role) is Role.VERIFIER


def get_role_display_name(role: Any) -> str:
    parsed = parse_role(role)
    if parsed is None:
        return "Unknown Role"
    return ROLE_DISPLAY_NAMES[parsed]


def can_assign_role(actor_role: Any, target_role: Any) -> bool:
    """
    Whether `actor_role` may grant `target_role` to another user.

    Only super admins hand out super admin; admins and super admins can
    assign every other role. Nobody can assign an unknown role.
    """
    target = parse_role(target_role)
    if target is None:
        return False
    if target is Role.SUPER_ADMIN:
        return is_super_admin(actor_role)
    return is_admin(actor_role)
