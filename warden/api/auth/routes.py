"""
Authentication Routes

Session endpoints called by the admin frontend when the identity
provider reports a sign-in or sign-out. Credentials are checked by the
provider; these routes only accept its signed tokens and record the
transition in the audit trail.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from warden.api.access.audit import AuditEventType, AuditLogger, AuditSeverity
from warden.api.access.client import ClientContext
from warden.api.access.identity import IdentityContext, RoleRecordStore
from warden.api.access.store import AuditStore
from warden.api.auth.jwt import principal_from_token
from warden.api.auth.schemas import IdentityResponse, SessionResponse
from warden.api.dependencies import (
    get_audit_store,
    get_client_context,
    get_role_store,
    security,
)


router = APIRouter()


@router.post(
    "/session",
    response_model=SessionResponse,
    summary="Start an audited session",
)
async def sign_in(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    role_store: RoleRecordStore = Depends(get_role_store),
    store: AuditStore = Depends(get_audit_store),
    client: ClientContext = Depends(get_client_context),
) -> SessionResponse:
    """
    Resolve the token's principal and record LOGIN.

    First-time principals get a viewer role record.
    """
    context = IdentityContext(role_store, session_id=client.session_id)
    audit = AuditLogger(store, context, client)
    audit.attach(context)

    principal = principal_from_token(credentials.credentials) if credentials else None
    if principal is None:
        await audit.log_event(
            AuditEventType.LOGIN_FAILED,
            {"reason": "missing or invalid token"},
            AuditSeverity.MEDIUM,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity = await context.handle_auth_state(principal)
    if identity is None:
        await audit.log_event(
            AuditEventType.LOGIN_FAILED,
            {"reason": "account deactivated", "principalId": principal.uid},
            AuditSeverity.MEDIUM,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    return SessionResponse(
        session_id=client.session_id,
        identity=IdentityResponse.from_identity(identity),
    )


@router.delete(
    "/session",
    response_model=SessionResponse,
    summary="End an audited session",
)
async def sign_out(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    role_store: RoleRecordStore = Depends(get_role_store),
    store: AuditStore = Depends(get_audit_store),
    client: ClientContext = Depends(get_client_context),
) -> SessionResponse:
    """Record LOGOUT for the token's identity, if it resolves."""
    context = IdentityContext(role_store, session_id=client.session_id)
    principal = principal_from_token(credentials.credentials) if credentials else None
    await context.handle_auth_state(principal)

    audit = AuditLogger(store, context, client)
    audit.attach(context)
    await context.sign_out()

    return SessionResponse(session_id=client.session_id)

