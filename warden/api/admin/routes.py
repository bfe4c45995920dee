"""
Admin Routes

API endpoints for role administration. Authorization is enforced by
AdminService so that every denial is audited in one place.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from warden.api.access.audit import AuditLogger
from warden.api.access.identity import Identity, IdentityContext, RoleRecordStore
from warden.api.access.rbac import Role
from warden.api.dependencies import (
    get_audit_logger,
    get_current_identity,
    get_identity_context,
    get_role_store,
)
from warden.api.admin.schemas import (
    AdminUserListResponse,
    AdminUserResponse,
    MessageResponse,
    RoleChangeRequest,
    StatusChangeRequest,
)
from warden.api.admin.service import (
    AdminError,
    AdminService,
    PermissionDeniedError,
    UserNotFoundError,
)


router = APIRouter()


async def get_admin_service(
    role_store: RoleRecordStore = Depends(get_role_store),
    audit: AuditLogger = Depends(get_audit_logger),
    identity: IdentityContext = Depends(get_identity_context),
    _: Identity = Depends(get_current_identity),
) -> AdminService:
    return AdminService(role_store, audit, identity)


def _http_error(error: AdminError) -> HTTPException:
    if isinstance(error, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, UserNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


# ==================== User Management ====================


@router.get(
    "/users",
    response_model=AdminUserListResponse,
    summary="List role records",
)
async def list_users(
    service: AdminService = Depends(get_admin_service),
    role: Optional[Role] = Query(None, description="Filter by role"),
    search: Optional[str] = Query(None, description="Search by email or id"),
    is_active: Optional[bool] = Query(None, description="Filter by active status"),
) -> AdminUserListResponse:
    """List role records. Requires ManageUsers."""
    try:
        records = await service.list_users(role=role, search=search, is_active=is_active)
    except AdminError as e:
        raise _http_error(e)

    users = [AdminUserResponse.from_record(r) for r in records]
    return AdminUserListResponse(users=users, total=len(users))


@router.patch(
    "/users/{uid}/role",
    response_model=AdminUserResponse,
    summary="Change a user's role",
)
async def change_role(
    uid: str,
    request: RoleChangeRequest,
    service: AdminService = Depends(get_admin_service),
) -> AdminUserResponse:
    """
    Assign a role. Requires ManageRoles.

    The new role may not rank above the caller's own role.
    """
    try:
        record = await service.change_role(uid, request.role)
    except AdminError as e:
        raise _http_error(e)
    return AdminUserResponse.from_record(record)


@router.patch(
    "/users/{uid}/status",
    response_model=AdminUserResponse,
    summary="Activate or deactivate a user",
)
async def set_status(
    uid: str,
    request: StatusChangeRequest,
    service: AdminService = Depends(get_admin_service),
) -> AdminUserResponse:
    """Activate or deactivate an account. Requires ManageUsers."""
    try:
        record = await service.set_active(uid, request.is_active)
    except AdminError as e:
        raise _http_error(e)
    return AdminUserResponse.from_record(record)


@router.delete(
    "/users/{uid}",
    response_model=MessageResponse,
    summary="Delete a user's role record",
)
async def delete_user(
    uid: str,
    service: AdminService = Depends(get_admin_service),
) -> MessageResponse:
    """Delete a role record. Super admins only."""
    try:
        await service.delete_user(uid)
    except AdminError as e:
        raise _http_error(e)
    return MessageResponse(message=f"User {uid} deleted")
