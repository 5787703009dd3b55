"""
Role Service: reads and changes the role stored on a user's profile.

The permission logic itself lives in carbon_market.auth; this service only
bridges it to the `profiles` table.
"""

import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.auth.roles import Role, parse_role
from carbon_market.models import Profile

logger = logging.getLogger(__name__)


class RoleService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_profile(self, user_id: str) -> Profile | None:
        result = await self.session.execute(
            select(Profile).where(Profile.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_role(self, user_id: str) -> Role:
        """Role on the profile, or USER if there is no profile or the stored value is unknown."""
        if not user_id:
            return Role.USER

        result = await self.session.execute(
            select(Profile.role).where(Profile.id == user_id)
        )
        stored = result.scalar_one_or_none()
        role = parse_role(stored)
        if role is None:
            if stored:
                logger.warning("Profile %s has unknown role %r, treating as user", user_id, stored)
            return Role.USER
        return role

    async def update_user_role(self, user_id: str, role: Role | str) -> Profile | None:
        """
        Store a new role on the profile.

        Raises ValueError for an unknown role. Returns None if the profile
        does not exist. Whether the caller may grant the role is checked by
        the API layer with `can_assign_role`.
        """
        parsed = parse_role(role)
        if parsed is None:
            raise ValueError(f"Unknown role: {role!r}")

        profile = await self._get_profile(user_id)
        if profile is None:
            return None

        profile.role = parsed.value
        await self.session.flush()
        return profile

    async def list_users(self) -> list[Profile]:
        result = await self.session.execute(
            select(Profile).order_by(Profile.created_at.desc())
        )
        return list(result.scalars())

    async def get_role_statistics(self) -> dict[str, int]:
        """Number of profiles per role; profiles without a role count as users."""
        result = await self.session.execute(
            select(Profile.role, func.count(Profile.id)).group_by(Profile.role)
        )
        stats: dict[str, int] = {}
        for role, count in result.all():
            key = role or Role.USER.value
            stats[key] = stats.get(key, 0) + count
        return stats
