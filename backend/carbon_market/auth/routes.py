"""
Route guards: which UI route needs which permission.

Routes missing from ROUTE_PERMISSIONS are open to every role (login,
register, landing pages). Listed routes delegate to has_permission, so an
unknown role is denied everywhere a permission is required.
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from carbon_market.auth.permissions import Permission
from carbon_market.auth.roles import Role, has_permission, parse_role

ROUTE_PERMISSIONS: Mapping[str, Permission] = MappingProxyType({
    "/dashboard": Permission.VIEW_DASHBOARD,
    "/profile": Permission.VIEW_OWN_PROFILE,
    "/projects": Permission.VIEW_OWN_PROJECTS,
    "/submit-project": Permission.CREATE_PROJECTS,
    "/marketplace": Permission.VIEW_MARKETPLACE,
    "/wallet": Permission.MANAGE_WALLET,
    "/portfolio": Permission.VIEW_OWN_PORTFOLIO,
    "/certificates": Permission.VIEW_CERTIFICATES,
    "/receipts": Permission.VIEW_RECEIPTS,
    "/verifier": Permission.VERIFY_PROJECTS,
    "/admin": Permission.VIEW_ADMIN_PANEL,
    "/users": Permission.MANAGE_USERS,
    "/analytics": Permission.VIEW_ANALYTICS,
    "/audit-logs": Permission.VIEW_AUDIT_LOGS,
    "/settings/system": Permission.MANAGE_SYSTEM_SETTINGS,
})

_DEFAULT_ROUTES: Mapping[Role, str] = MappingProxyType({
    Role.SUPER_ADMIN: "/admin",
    Role.ADMIN: "/admin",
    Role.VERIFIER: "/verifier",
    Role.USER: "/marketplace",
})


def _normalize_path(route_path: Any) -> Any:
    # "/admin/" and "/admin" are the same page
    if isinstance(route_path, str) and len(route_path) > 1 and route_path.endswith("/"):
        return route_path[:-1]
    return route_path


def get_required_permission(route_path: Any) -> Permission | None:
    try:
        return ROUTE_PERMISSIONS.get(_normalize_path(route_path))
    except TypeError:
        # unhashable path
        return None


def can_access_route(role: Any, route_path: Any) -> bool:
    required = get_required_permission(route_path)
    if required is None:
        return True
    return has_permission(role, required)


def get_default_route(role: Any) -> str:
    """Landing page after login, and where a denied navigation is redirected."""
    return _DEFAULT_ROUTES.get(parse_role(role), "/marketplace")
