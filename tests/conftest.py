"""
WARDEN Test Configuration
=========================

Pytest fixtures shared by the unit tests: an isolated in-memory
database, stores bound to it, and helpers to sign identities in.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from warden.api.access.audit import AuditLogger
from warden.api.access.client import ClientContext
from warden.api.access.identity import IdentityContext, Principal, RoleRecordStore
from warden.api.access.rbac import Role
from warden.api.access.store import AuditStore
from warden.api.db.models import Base


# ==================== Database Fixtures ====================


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
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


@pytest.fixture
def session_maker(async_engine) -> async_sessionmaker:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def role_store(session_maker) -> RoleRecordStore:
    return RoleRecordStore(session_maker)


@pytest.fixture
def audit_store(session_maker) -> AuditStore:
    return AuditStore(session_maker)


# ==================== Identity Fixtures ====================


@pytest.fixture
def client_context() -> ClientContext:
    """Client metadata with a known address, so no lookup is made."""
    return ClientContext(
        session_id="session_1700000000000_abc123def",
        user_agent="pytest-agent/1.0",
        ip_address="203.0.113.7",
    )


@pytest.fixture
def sign_in(role_store, client_context):
    """Factory: seed a role record and return a resolved IdentityContext."""

    async def _sign_in(uid: str, role: Role = Role.VIEWER, email: str = None) -> IdentityContext:
        principal = Principal(uid=uid, email=email or f"{uid}@example.com", email_verified=True)
        await role_store.ensure(principal)
        if role is not Role.VIEWER:
            await role_store.update(uid, updated_by="test-seed", role=role.value)

        context = IdentityContext(role_store, session_id=client_context.session_id)
        await context.handle_auth_state(principal)
        return context

    return _sign_in


@pytest_asyncio.fixture
async def admin_context(sign_in) -> IdentityContext:
    return await sign_in("u_super", Role.SUPER_ADMIN, "root@example.com")


@pytest.fixture
def audit_logger(audit_store, admin_context, client_context) -> AuditLogger:
    return AuditLogger(audit_store, admin_context, client_context)
