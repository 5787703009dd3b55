from carbon_market.auth.permissions import Permission
from carbon_market.auth.roles import (
    Role, ROLE_PERMISSIONS, has_permission, has_any_permission, has_all_permissions,
    is_admin, is_super_admin, is_verifier, can_assign_role, get_role_permissions,
    get_role_display_name,
)
from carbon_market.auth.routes import ROUTE_PERMISSIONS, can_access_route, get_default_route
from carbon_market.auth.context import RequestContext

__all__ = [
    "Permission", "Role", "ROLE_PERMISSIONS", "ROUTE_PERMISSIONS", "RequestContext",
    "has_permission", "has_any_permission", "has_all_permissions",
    "is_admin", "is_super_admin", "is_verifier", "can_assign_role",
    "get_role_permissions", "get_role_display_name",
    "can_access_route", "get_default_route",
]
