"""Shared test fixtures for backend tests."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from carbon_market.database import Base
from carbon_market.main import app
from carbon_market.api.deps import get_db
from carbon_market.auth.jwt import create_access_token
from carbon_market.models import Profile

PROFILE_IDS = {
    "user": "0b7d6c1e-0000-4000-8000-000000000001",
    "verifier": "0b7d6c1e-0000-4000-8000-000000000002",
    "admin": "0b7d6c1e-0000-4000-8000-000000000003",
    "super_admin": "0b7d6c1e-0000-4000-8000-000000000004",
}


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test, schema created from the models."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed_profiles(db_session: AsyncSession) -> dict[str, Profile]:
    """One profile per role, created a day apart so ordering is deterministic."""
    profiles = {}
    for day, (role, profile_id) in enumerate(PROFILE_IDS.items(), start=1):
        profile = Profile(
            id=profile_id,
            full_name=f"Test {role.replace('_', ' ').title()}",
            role=role,
            created_at=datetime(2026, 1, day, 9, 0, 0),
        )
        db_session.add(profile)
        profiles[role] = profile
    await db_session.flush()
    return profiles


def _make_auth_header(user_id: str) -> dict:
    """Create an Authorization header with a valid provider-style JWT."""
    token = create_access_token(user_id, f"{user_id[-4:]}@example.com")
    return {"Authorization": f"Bearer {token}"}


def _override_db(session: AsyncSession):
    """Create a dependency override for get_db."""
    async def _get_db():
        yield session
    return _get_db


@asynccontextmanager
async def _client(session: AsyncSession, headers: dict | None = None):
    app.dependency_overrides[get_db] = _override_db(session)
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test", headers=headers) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def user_client(db_session: AsyncSession, seed_profiles) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client authenticated as a regular marketplace user."""
    async with _client(db_session, _make_auth_header(PROFILE_IDS["user"])) as client:
        yield client


@pytest_asyncio.fixture
async def verifier_client(db_session: AsyncSession, seed_profiles) -> AsyncGenerator[AsyncClient, None]:
    async with _client(db_session, _make_auth_header(PROFILE_IDS["verifier"])) as client:
        yield client


@pytest_asyncio.fixture
async def admin_client(db_session: AsyncSession, seed_profiles) -> AsyncGenerator[AsyncClient, None]:
    async with _client(db_session, _make_auth_header(PROFILE_IDS["admin"])) as client:
        yield client


@pytest_asyncio.fixture
async def super_admin_client(db_session: AsyncSession, seed_profiles) -> AsyncGenerator[AsyncClient, None]:
    async with _client(db_session, _make_auth_header(PROFILE_IDS["super_admin"])) as client:
        yield client


@pytest_asyncio.fixture
async def anon_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with no authentication."""
    async with _client(db_session) as client:
        yield client


@pytest_asyncio.fixture
async def unknown_profile_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Valid token whose subject has no profile row."""
    async with _client(db_session, _make_auth_header("0b7d6c1e-0000-4000-8000-0000000000ff")) as client:
        yield client
