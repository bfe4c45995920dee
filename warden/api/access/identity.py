"""
WARDEN - Identity Context

Resolves the acting identity for one session from the external identity
provider's principal and the role record kept in the database.

An IdentityContext belongs to exactly one session or connection. It is
created by the request wiring and passed explicitly to the access
evaluator and the audit logger; nothing reads identity from module state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, FrozenSet, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from warden.api.access.rbac import (
    DEFAULT_ROLE,
    Permission,
    Role,
    coerce_role,
    permissions_for,
)
from warden.api.db.models import AdminUser
from warden.core.event_bus import Event, EventBus, EventType

logger = logging.getLogger(__name__)


# ============================================================
# Principal & Identity
# ============================================================


@dataclass(frozen=True)
class Principal:
    """Authenticated principal as supplied by the identity provider."""

    uid: str
    email: Optional[str] = None
    email_verified: bool = False


@dataclass(frozen=True)
class Identity:
    """
    Resolved acting identity.

    ``permissions`` is derived from ``role`` on every access and cannot be
    assigned. An unknown role (None) carries no permissions.
    """

    id: str
    display_label: str
    role: Optional[Role]

    @property
    def permissions(self) -> FrozenSet[Permission]:
        return permissions_for(self.role)

    @property
    def role_name(self) -> str:
        return self.role.value if self.role else "unknown"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_label": self.display_label,
            "role": self.role_name,
            "permissions": sorted(p.value for p in self.permissions),
        }


@dataclass(frozen=True)
class IdentityTransition:
    """One sign-in or sign-out as seen by subscribers."""

    identity: Optional[Identity]
    previous: Optional[Identity]

    @property
    def signed_in(self) -> bool:
        return self.identity is not None


TransitionCallback = Callable[[IdentityTransition], Union[None, Awaitable[None]]]


# ============================================================
# Role Record Store
# ============================================================


class RoleRecordSnapshot(BaseModel):
    """Flat, diffable view of a role record."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    uid: str
    email: Optional[str] = None
    role: str
    is_active: bool = True


class RoleRecordStore:
    """
    Role records keyed by principal id.

    Each call runs in its own short transaction so role lookups never
    share a session with the caller's business transaction.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def get(self, uid: str) -> Optional[RoleRecordSnapshot]:
        async with self._session_maker() as session:
            record = await session.get(AdminUser, uid)
            return RoleRecordSnapshot.model_validate(record) if record else None

    async def ensure(self, principal: Principal) -> RoleRecordSnapshot:
        """Fetch the principal's record, creating a lowest-role one if absent."""
        now = datetime.now(timezone.utc)
        async with self._session_maker() as session:
            async with session.begin():
                record = await session.get(AdminUser, principal.uid)
                if record is None:
                    record = AdminUser(
                        uid=principal.uid,
                        email=principal.email,
                        role=DEFAULT_ROLE.value,
                        is_active=True,
                        created_at=now,
                        last_login_at=now,
                    )
                    session.add(record)
                    logger.info(f"Created role record for {principal.uid} with role {DEFAULT_ROLE.value}")
                else:
                    record.last_login_at = now
                    if principal.email and record.email != principal.email:
                        record.email = principal.email
                snapshot = RoleRecordSnapshot.model_validate(record)
            return snapshot

    async def list(
        self,
        role: Optional[Role] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[RoleRecordSnapshot]:
        query = select(AdminUser)
        if role is not None:
            query = query.where(AdminUser.role == role.value)
        if search:
            query = query.where(or_(
                AdminUser.email.ilike(f"%{search}%"),
                AdminUser.uid.ilike(f"%{search}%"),
            ))
        if is_active is not None:
            query = query.where(AdminUser.is_active == is_active)
        query = query.order_by(AdminUser.email)

        async with self._session_maker() as session:
            result = await session.execute(query)
            return [RoleRecordSnapshot.model_validate(r) for r in result.scalars().all()]

    async def update(self, uid: str, updated_by: str, **values: Any) -> Optional[RoleRecordSnapshot]:
        """Apply field updates; returns the new snapshot or None if missing."""
        async with self._session_maker() as session:
            async with session.begin():
                record = await session.get(AdminUser, uid)
                if record is None:
                    return None
                for name, value in values.items():
                    setattr(record, name, value)
                record.updated_by = updated_by
                snapshot = RoleRecordSnapshot.model_validate(record)
            return snapshot

    async def delete(self, uid: str) -> Optional[RoleRecordSnapshot]:
        async with self._session_maker() as session:
            async with session.begin():
                record = await session.get(AdminUser, uid)
                if record is None:
                    return None
                snapshot = RoleRecordSnapshot.model_validate(record)
                await session.delete(record)
            return snapshot


# ============================================================
# Identity Context
# ============================================================


class IdentityContext:
    """
    Current identity for one session, with change subscription.

    Transitions are driven by ``handle_auth_state`` (called with the
    provider's principal, or None on sign-out). Each transition is
    delivered once to every subscriber registered at that moment,
    including the first resolution.
    """

    def __init__(
        self,
        role_store: RoleRecordStore,
        session_id: Optional[str] = None,
        bus: Optional[EventBus] = None,
    ):
        self._role_store = role_store
        self._bus = bus or EventBus()
        self._identity: Optional[Identity] = None
        self._resolved = False
        self.session_id = session_id

    def current(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def is_resolved(self) -> bool:
        return self._resolved

    def subscribe(self, callback: TransitionCallback) -> Callable[[], None]:
        """Register for transitions. The returned handle is idempotent."""

        def _handler(event: Event):
            return callback(event.data["transition"])

        remove = self._bus.subscribe(
            {EventType.IDENTITY_RESOLVED, EventType.IDENTITY_CLEARED},
            _handler,
            subscriber_id=f"identity_{uuid4().hex[:12]}",
        )

        def unsubscribe() -> None:
            remove()

        return unsubscribe

    async def handle_auth_state(self, principal: Optional[Principal]) -> Optional[Identity]:
        """Apply an authentication-state change from the identity provider."""
        previous = self._identity
        identity = await self._resolve(principal) if principal is not None else None

        first = not self._resolved
        self._resolved = True
        self._identity = identity

        if not first and identity == previous:
            return identity

        transition = IdentityTransition(identity=identity, previous=previous)
        await self._bus.publish(Event(
            event_type=EventType.IDENTITY_RESOLVED if identity else EventType.IDENTITY_CLEARED,
            data={"transition": transition},
            source="identity_context",
        ))
        return identity

    async def sign_out(self) -> None:
        await self.handle_auth_state(None)

    async def _resolve(self, principal: Principal) -> Optional[Identity]:
        label = principal.email or principal.uid
        try:
            record = await self._role_store.ensure(principal)
        except SQLAlchemyError as e:
            logger.error(f"Error loading role for {principal.uid}, using {DEFAULT_ROLE.value}: {e}")
            return Identity(id=principal.uid, display_label=label, role=DEFAULT_ROLE)

        if not record.is_active:
            logger.warning(f"Role record for {principal.uid} is deactivated")
            return None

        return Identity(
            id=principal.uid,
            display_label=label,
            role=coerce_role(record.role),
        )
