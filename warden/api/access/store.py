"""
WARDEN - Audit Event Store

Append-only persistence for audit events. The store exposes writes and
indexed reads only; persisted rows are guarded against update and delete
by ORM listeners on AuditLog.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from warden.api.access.audit import AuditEvent, AuditSeverity
from warden.api.db.models import AuditLog, ImmutableRecordError

logger = logging.getLogger(__name__)

__all__ = ["AuditStore", "AuditStoreError", "ImmutableRecordError"]


class AuditStoreError(Exception):
    """Audit store unavailable, or a read or write failed."""


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_event(row: AuditLog) -> AuditEvent:
    return AuditEvent(
        id=row.id,
        event_type=row.event_type,
        severity=AuditSeverity(row.severity),
        actor_id=row.actor_id,
        actor_label=row.actor_label,
        actor_role=row.actor_role,
        timestamp=as_utc(row.timestamp),
        details=row.details or {},
        client_ip=row.client_ip,
        client_agent=row.client_agent,
        session_id=row.session_id,
        source=row.source,
    )


class AuditStore:
    """SQLAlchemy-backed audit log."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def append(self, event: AuditEvent) -> AuditEvent:
        """Persist one event; returns it with the store-assigned id."""
        row = AuditLog(
            event_type=event.event_type,
            severity=event.severity.value,
            actor_id=event.actor_id,
            actor_label=event.actor_label,
            actor_role=event.actor_role,
            timestamp=as_utc(event.timestamp),
            details=event.details,
            client_ip=event.client_ip,
            client_agent=event.client_agent,
            session_id=event.session_id,
            source=event.source,
        )
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(row)
                    await session.flush()
                    stored = _to_event(row)
        except SQLAlchemyError as e:
            raise AuditStoreError(f"Failed to append {event.event_type}: {e}") from e

        return stored

    async def query(
        self,
        *,
        actor_id: Optional[str] = None,
        event_type: Optional[str] = None,
        severity: Optional[AuditSeverity] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Events matching every given constraint, newest first."""
        query = select(AuditLog)

        if actor_id:
            query = query.where(AuditLog.actor_id == actor_id)
        if event_type:
            query = query.where(AuditLog.event_type == event_type)
        if severity is not None:
            query = query.where(AuditLog.severity == severity.value)
        if start is not None:
            query = query.where(AuditLog.timestamp >= as_utc(start))
        if end is not None:
            query = query.where(AuditLog.timestamp <= as_utc(end))

        query = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit)

        try:
            async with self._session_maker() as session:
                result = await session.execute(query)
                return [_to_event(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise AuditStoreError(f"Audit query failed: {e}") from e
