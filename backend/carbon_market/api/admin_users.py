"""Admin user management: role assignment and role statistics."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.api.deps import get_db, require
from carbon_market.auth.context import RequestContext
from carbon_market.auth.permissions import Permission
from carbon_market.auth.roles import Role, can_assign_role, get_role_permissions, parse_role
from carbon_market.models import Profile
from carbon_market.services.role_service import RoleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/users", tags=["admin"])

VALID_ROLES = sorted(r.value for r in Role)


class UpdateRoleRequest(BaseModel):
    role: str


def _user_response(profile: Profile) -> dict:
    role = parse_role(profile.role) or Role.USER
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "role": role.value,
        "kyc_level": profile.kyc_level,
        "permissions": sorted(p.value for p in get_role_permissions(role)),
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    }


@router.get("")
async def list_users(ctx: RequestContext = Depends(require(Permission.MANAGE_USERS)),
                     db: AsyncSession = Depends(get_db)):
    """List all users with their effective role."""
    users = await RoleService(db).list_users()
    return [_user_response(u) for u in users]


@router.get("/stats")
async def role_statistics(ctx: RequestContext = Depends(require(Permission.VIEW_ANALYTICS)),
                          db: AsyncSession = Depends(get_db)):
    """Number of users per role."""
    return await RoleService(db).get_role_statistics()


@router.put("/{user_id}/role")
async def update_user_role(user_id: str,
                           body: UpdateRoleRequest,
                           ctx: RequestContext = Depends(require(Permission.MANAGE_USERS)),
                           db: AsyncSession = Depends(get_db)):
    """Change a user's role. Only super admins may grant super admin."""
    target = parse_role(body.role)
    if target is None:
        raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {VALID_ROLES}")

    if not can_assign_role(ctx.role, target):
        raise HTTPException(
            status_code=403,
            detail=f"Role '{ctx.role.value}' cannot assign role '{target.value}'",
        )

    profile = await RoleService(db).update_user_role(user_id, target)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info("Role of %s set to %s by %s", user_id, target.value, ctx.actor)
    return _user_response(profile)
