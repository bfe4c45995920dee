"""
Database Session Management

One lazily created engine and session factory shared by the role-record
store and the audit store. SQLite URLs (used by tests and local runs) get
a single shared connection; PostgreSQL URLs go through asyncpg.
"""

import logging
import ssl
from typing import Any, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from warden.api.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool and connect arguments for the configured backend."""
    backend = make_url(url).get_backend_name()

    if backend == "sqlite":
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }

    connect_args: Dict[str, Any] = {}
    if settings.DATABASE_SSL:
        connect_args["ssl"] = ssl.create_default_context()
    return {"poolclass": NullPool, "connect_args": connect_args}


def get_engine() -> AsyncEngine:
    global _engine

    if _engine is None:
        url = settings.DATABASE_URL
        logger.info("Creating engine for %s", make_url(url).render_as_string(hide_password=True))
        _engine = create_async_engine(url, echo=settings.DATABASE_ECHO, **_engine_options(url))

    return _engine


def get_session_maker() -> async_sessionmaker:
    """Session factory handed to RoleRecordStore and AuditStore."""
    global _session_maker

    if _session_maker is None:
        _session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    return _session_maker


async def init_db() -> None:
    """Open the engine and create the admin_users and audit_logs tables if asked to."""
    from warden.api.db.models import Base

    engine = get_engine()
    if not settings.DATABASE_CREATE_TABLES:
        return

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tables ready: %s", ", ".join(sorted(Base.metadata.tables)))


async def close_db() -> None:
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None
        logger.info("Database connection closed")
