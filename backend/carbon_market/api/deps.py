"""
API Dependencies: DB session, auth context, permission guards.

`get_request_context`:
  1. Extracts the Bearer token from the Authorization header
  2. Decodes and validates the provider-issued JWT
  3. Loads the caller's role from their profile
  4. Returns a RequestContext

Auth-exempt paths (no token required):
  /api/health, /metrics
"""

import logging
from typing import AsyncGenerator

from fastapi import Depends, Request, HTTPException
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import async_session
from carbon_market.auth.permissions import Permission
from carbon_market.auth.context import RequestContext
from carbon_market.auth.jwt import decode_access_token
from carbon_market.middleware.metrics import access_denied_total
from carbon_market.services.role_service import RoleService

logger = logging.getLogger(__name__)


# ── Database session ─────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session per request, commit on success, rollback on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Request context (JWT authentication) ──────────────────────────────────────

async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> RequestContext:
    """Build a RequestContext for the current request from its access token."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        access_denied_total.labels(reason="unauthenticated").inc()
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = auth_header[7:]  # strip "Bearer "
    try:
        claims = decode_access_token(token)
    except JWTError as e:
        logger.debug("JWT decode failed: %s", e)
        access_denied_total.labels(reason="invalid_token").inc()
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = str(claims["sub"])
    role = await RoleService(db).get_user_role(user_id)
    return RequestContext(user_id=user_id, role=role)


# ── Permission guards ────────────────────────────────────────────────────────

def require(*perms: Permission):
    """
    FastAPI dependency that checks the caller has ALL listed permissions.

    Usage:
        @router.get("/users")
        async def list_users(ctx: RequestContext = Depends(require(Permission.MANAGE_USERS))):
            ...
    """
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        for p in perms:
            ctx.require_permission(p)
        return ctx
    return _check


def require_any(*perms: Permission):
    """
    FastAPI dependency that checks the caller has AT LEAST ONE of the listed permissions.
    """
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        ctx.require_any(*perms)
        return ctx
    return _check
