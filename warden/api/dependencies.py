"""
FastAPI Dependencies

Per-request wiring of identity, client metadata and the audit trail.
Each request gets its own IdentityContext; nothing is shared between
requests for different principals.
"""

from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import async_sessionmaker

from warden.api.access.audit import AuditEventType, AuditLogger
from warden.api.access.client import (
    UNKNOWN,
    ClientContext,
    client_ip_from_headers,
    is_valid_session_id,
    new_session_id,
)
from warden.api.access.identity import Identity, IdentityContext, RoleRecordStore
from warden.api.access.query import AuditQueryEngine
from warden.api.access.rbac import AccessRequirement, describe_requirement, evaluate
from warden.api.access.statistics import AuditStatisticsAggregator
from warden.api.access.store import AuditStore
from warden.api.auth.jwt import principal_from_token
from warden.api.config import settings
from warden.api.db.session import get_session_maker


security = HTTPBearer(auto_error=False)


def get_session_factory() -> async_sessionmaker:
    """Session factory for stores. Overridden in tests."""
    return get_session_maker()


def get_role_store(
    session_maker: async_sessionmaker = Depends(get_session_factory),
) -> RoleRecordStore:
    return RoleRecordStore(session_maker)


def get_audit_store(
    session_maker: async_sessionmaker = Depends(get_session_factory),
) -> AuditStore:
    return AuditStore(session_maker)


def get_query_engine(store: AuditStore = Depends(get_audit_store)) -> AuditQueryEngine:
    return AuditQueryEngine(store)


def get_statistics_aggregator(
    engine: AuditQueryEngine = Depends(get_query_engine),
) -> AuditStatisticsAggregator:
    return AuditStatisticsAggregator(engine)


async def get_client_context(request: Request) -> ClientContext:
    """
    Client metadata for this request.

    The session id comes from the session cookie when it holds an id we
    issued; otherwise a new one is stored on ``request.state`` so the
    response can set the cookie.
    """
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not is_valid_session_id(session_id):
        session_id = new_session_id()
        request.state.new_session_id = session_id

    peer = request.client.host if request.client else None
    return ClientContext(
        session_id=session_id,
        user_agent=request.headers.get("user-agent", UNKNOWN),
        ip_address=client_ip_from_headers(request.headers, peer),
    )


async def get_identity_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    role_store: RoleRecordStore = Depends(get_role_store),
    client: ClientContext = Depends(get_client_context),
) -> IdentityContext:
    """Identity context resolved from the bearer token, if any."""
    context = IdentityContext(role_store, session_id=client.session_id)
    principal = principal_from_token(credentials.credentials) if credentials else None
    await context.handle_auth_state(principal)
    return context


async def get_audit_logger(
    store: AuditStore = Depends(get_audit_store),
    identity: IdentityContext = Depends(get_identity_context),
    client: ClientContext = Depends(get_client_context),
) -> AuditLogger:
    return AuditLogger(store, identity, client)


async def get_current_identity(
    identity: IdentityContext = Depends(get_identity_context),
) -> Identity:
    """
    Get the acting identity.

    Raises:
        HTTPException: If no valid token was presented or the account
            is deactivated
    """
    current = identity.current()
    if current is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return current


def require(requirement: AccessRequirement) -> Callable:
    """
    Dependency factory guarding a route with an access requirement.

    Denials are recorded as PERMISSION_DENIED security events.

    Usage:
        @router.get("/logs")
        async def logs(identity: Identity = Depends(require(VIEW_AUDIT_LOGS))):
            ...
    """

    async def dependency(
        request: Request,
        identity: Identity = Depends(get_current_identity),
        audit: AuditLogger = Depends(get_audit_logger),
    ) -> Identity:
        if not evaluate(identity, requirement):
            description = describe_requirement(requirement)
            await audit.log_security_event(
                AuditEventType.PERMISSION_DENIED,
                {
                    "path": request.url.path,
                    "method": request.method,
                    "requirement": description,
                },
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied: requires {description}",
            )
        return identity

    return dependency
