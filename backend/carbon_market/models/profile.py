"""
Profile model: one row per account, created by the auth provider's sign-up hook.

`role` is free text in the table; readers go through RoleService, which
maps anything it doesn't recognise to the least-privileged role.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import String, Integer, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from carbon_market.database import Base


class Profile(Base):
    __tablename__ = "profiles"
    # fetch server-side timestamps on flush; lazy refreshes are not allowed under asyncio
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    role: Mapped[str | None] = mapped_column(String(20), nullable=True, default="user", index=True)
    kyc_level: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
