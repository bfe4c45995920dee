"""
Admin Schemas

Pydantic models for role administration.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from warden.api.access.rbac import Role, permissions_for


class AdminUserResponse(BaseModel):
    """Role record as shown to administrators."""

    uid: str
    email: Optional[str] = None
    role: str
    is_active: bool
    permissions: List[str] = []

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_record(cls, record) -> "AdminUserResponse":
        return cls(
            uid=record.uid,
            email=record.email,
            role=record.role,
            is_active=record.is_active,
            permissions=sorted(p.value for p in permissions_for(record.role)),
        )


class AdminUserListResponse(BaseModel):
    """List of role records."""

    users: List[AdminUserResponse]
    total: int


class RoleChangeRequest(BaseModel):
    """Request to assign a role."""

    role: Role


class StatusChangeRequest(BaseModel):
    """Request to activate or deactivate an account."""

    is_active: bool


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
