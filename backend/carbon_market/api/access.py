"""Access API: lets the UI ask what the current user may see and do."""

from fastapi import APIRouter, Depends, Query

from carbon_market.api.deps import get_request_context, require
from carbon_market.auth.context import RequestContext
from carbon_market.auth.permissions import Permission
from carbon_market.auth.roles import (
    Role, ROLE_PERMISSIONS, get_role_display_name, is_admin, is_super_admin, is_verifier,
)
from carbon_market.auth.routes import get_default_route, get_required_permission
from carbon_market.middleware.metrics import access_denied_total

router = APIRouter(prefix="/api/access", tags=["access"])


@router.get("/me")
async def my_access(ctx: RequestContext = Depends(get_request_context)):
    """Role, permissions and landing route of the caller."""
    return {
        "user_id": ctx.user_id,
        "role": ctx.role.value,
        "role_display_name": get_role_display_name(ctx.role),
        "permissions": sorted(p.value for p in ctx.permissions),
        "is_admin": is_admin(ctx.role),
        "is_super_admin": is_super_admin(ctx.role),
        "is_verifier": is_verifier(ctx.role),
        "default_route": get_default_route(ctx.role),
    }


@router.get("/route")
async def check_route(path: str = Query(..., min_length=1),
                      ctx: RequestContext = Depends(get_request_context)):
    """Whether the caller may open a UI route, and where to send them if not."""
    required = get_required_permission(path)
    allowed = ctx.can_access_route(path)
    if not allowed:
        access_denied_total.labels(reason="route").inc()
    return {
        "path": path,
        "required_permission": required.value if required else None,
        "allowed": allowed,
        "redirect_to": None if allowed else get_default_route(ctx.role),
    }


@router.get("/roles")
async def list_roles(ctx: RequestContext = Depends(require(Permission.MANAGE_USERS))):
    """Every role with its display name and permissions."""
    return [
        {
            "role": role.value,
            "display_name": get_role_display_name(role),
            "permissions": sorted(p.value for p in ROLE_PERMISSIONS[role]),
        }
        for role in Role
    ]
