"""
Admin Service

Role administration: listing role records, changing roles, activating
and deactivating accounts, deleting records. Every mutation is audited
and every denial is recorded as a security event.
"""

import logging
from typing import List, Optional

from warden.api.access.audit import AuditEventType, AuditLogger
from warden.api.access.identity import (
    Identity,
    IdentityContext,
    RoleRecordSnapshot,
    RoleRecordStore,
)
from warden.api.access.rbac import (
    AccessRequirement,
    MinimumRole,
    Permission,
    Role,
    SinglePermission,
    can_assign_role,
    describe_requirement,
    evaluate,
)

logger = logging.getLogger(__name__)


class AdminError(Exception):
    """Base class for role administration failures."""


class PermissionDeniedError(AdminError):
    """The acting identity may not perform the operation."""


class UserNotFoundError(AdminError):
    """No role record exists for the target id."""


class SelfModificationError(AdminError):
    """The acting identity targeted its own role record."""


MANAGE_USERS = SinglePermission(Permission.MANAGE_USERS)
MANAGE_ROLES = SinglePermission(Permission.MANAGE_ROLES)
SUPER_ADMIN_ONLY = MinimumRole(Role.SUPER_ADMIN)


class AdminService:
    """Service for role administration."""

    def __init__(
        self,
        role_store: RoleRecordStore,
        audit: AuditLogger,
        identity: IdentityContext,
    ):
        self.role_store = role_store
        self.audit = audit
        self.identity = identity

    # ==================== Authorization ====================

    async def _deny(self, action: str, reason: str, target: Optional[str] = None) -> None:
        actor = self.identity.current()
        logger.warning(
            f"Denied {action} for {actor.id if actor else 'anonymous'}: {reason}"
        )
        await self.audit.log_security_event(
            AuditEventType.PERMISSION_DENIED,
            {"action": action, "reason": reason, "targetId": target},
        )
        raise PermissionDeniedError(reason)

    async def _authorize(
        self,
        requirement: AccessRequirement,
        action: str,
        target: Optional[str] = None,
    ) -> Identity:
        identity = self.identity.current()
        if not evaluate(identity, requirement):
            await self._deny(action, f"requires {describe_requirement(requirement)}", target)
        return identity

    async def _load_target(self, actor: Identity, uid: str) -> RoleRecordSnapshot:
        if uid == actor.id:
            raise SelfModificationError("Cannot modify your own role record")
        record = await self.role_store.get(uid)
        if record is None:
            raise UserNotFoundError(uid)
        return record

    # ==================== Queries ====================

    async def list_users(
        self,
        role: Optional[Role] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[RoleRecordSnapshot]:
        """List role records, optionally filtered."""
        await self._authorize(MANAGE_USERS, "list_users")
        return await self.role_store.list(role=role, search=search, is_active=is_active)

    # ==================== Mutations ====================

    async def change_role(self, uid: str, new_role: Role) -> RoleRecordSnapshot:
        """
        Assign a new role to a record.

        The caller needs ManageRoles and may neither grant a role above
        its own level nor change the role of someone ranked above it.
        """
        actor = await self._authorize(MANAGE_ROLES, "change_role", uid)
        before = await self._load_target(actor, uid)

        if not can_assign_role(actor, new_role):
            await self._deny("change_role", f"cannot grant role {new_role.value}", uid)
        if not can_assign_role(actor, before.role):
            await self._deny("change_role", f"cannot modify a {before.role} account", uid)

        after = await self.role_store.update(uid, updated_by=actor.id, role=new_role.value)
        if after is None:
            raise UserNotFoundError(uid)

        logger.info(f"{actor.id} changed role of {uid}: {before.role} -> {after.role}")
        await self.audit.log_data_change("USER", uid, before, after, "ROLE_CHANGED")
        return after

    async def set_active(self, uid: str, is_active: bool) -> RoleRecordSnapshot:
        """Activate or deactivate a record."""
        actor = await self._authorize(MANAGE_USERS, "set_active", uid)
        before = await self._load_target(actor, uid)

        after = await self.role_store.update(uid, updated_by=actor.id, is_active=is_active)
        if after is None:
            raise UserNotFoundError(uid)

        logger.info(f"{actor.id} set {uid} active={is_active}")
        await self.audit.log_data_change("USER", uid, before, after, "STATUS_CHANGED")
        return after

    async def delete_user(self, uid: str) -> RoleRecordSnapshot:
        """Delete a record. Super admins only."""
        actor = await self._authorize(SUPER_ADMIN_ONLY, "delete_user", uid)
        await self._load_target(actor, uid)

        removed = await self.role_store.delete(uid)
        if removed is None:
            raise UserNotFoundError(uid)

        logger.info(f"{actor.id} deleted role record {uid}")
        await self.audit.log_data_change("USER", uid, removed, None, "DELETED")
        return removed
