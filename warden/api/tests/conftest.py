"""
Test Configuration and Fixtures

Shared fixtures for WARDEN API tests.
Provides an isolated database, the app wired to it, and bearer tokens
for principals of each role.
"""

from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from warden.api.access.identity import Principal, RoleRecordStore
from warden.api.access.rbac import Role
from warden.api.access.store import AuditStore
from warden.api.auth.jwt import create_access_token
from warden.api.db.models import Base
from warden.api.dependencies import get_session_factory
from warden.api.main import create_app


# ==================== Database Fixtures ====================


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine) -> async_sessionmaker:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture(scope="function")
def role_store(session_maker) -> RoleRecordStore:
    return RoleRecordStore(session_maker)


@pytest.fixture(scope="function")
def audit_store(session_maker) -> AuditStore:
    return AuditStore(session_maker)


# ==================== Application Fixtures ====================


@pytest.fixture(scope="function")
def app(session_maker) -> FastAPI:
    """Create FastAPI app bound to the test database."""
    test_app = create_app()
    test_app.dependency_overrides[get_session_factory] = lambda: session_maker
    return test_app


@pytest_asyncio.fixture(scope="function")
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ==================== Principal Fixtures ====================


USERS = {
    Role.VIEWER: "u_viewer",
    Role.MODERATOR: "u_moderator",
    Role.ADMIN: "u_admin",
    Role.SUPER_ADMIN: "u_super",
}


@pytest_asyncio.fixture(scope="function")
async def seeded_users(role_store) -> Dict[Role, str]:
    """One role record per role."""
    for role, uid in USERS.items():
        await role_store.ensure(Principal(uid=uid, email=f"{uid}@example.com"))
        if role is not Role.VIEWER:
            await role_store.update(uid, updated_by="test-seed", role=role.value)
    return USERS


def bearer(uid: str) -> Dict[str, str]:
    token = create_access_token(uid, f"{uid}@example.com", email_verified=True)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def auth_headers(seeded_users) -> Dict[Role, Dict[str, str]]:
    """Authorization headers keyed by role."""
    return {role: bearer(uid) for role, uid in seeded_users.items()}
