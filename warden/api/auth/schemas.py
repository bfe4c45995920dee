"""
Auth Schemas

Pydantic models for session and identity endpoints.
"""

from typing import List, Optional

from pydantic import BaseModel

from warden.api.access.identity import Identity
from warden.api.access.rbac import can_assign_role, roles_at_or_below


class IdentityResponse(BaseModel):
    """Resolved identity with its derived permissions."""

    id: str
    display_label: str
    role: str
    permissions: List[str]
    assignable_roles: List[str] = []

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        assignable = [
            r.value for r in roles_at_or_below(identity.role)
            if can_assign_role(identity, r)
        ]
        return cls(**identity.to_dict(), assignable_roles=assignable)


class SessionResponse(BaseModel):
    """Result of a sign-in or sign-out."""

    session_id: str
    identity: Optional[IdentityResponse] = None
