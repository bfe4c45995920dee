"""
SQLAlchemy ORM Models

Role records and the append-only audit log.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class AdminUser(Base):
    """Role record for a principal known to the identity provider."""

    __tablename__ = "admin_users"

    # Principal id as issued by the identity provider
    uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)

    role: Mapped[str] = mapped_column(String(32), nullable=False, default="viewer")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_by: Mapped[Optional[str]] = mapped_column(String(128))

    def __repr__(self) -> str:
        return f"<AdminUser {self.uid} role={self.role}>"


class AuditLog(Base):
    """Append-only audit event. Rows are never updated or deleted."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)

    # Actor
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    actor_label: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    details: Mapped[dict] = mapped_column(JSONPayload, default=dict)

    # Client metadata
    client_ip: Mapped[str] = mapped_column(String(64), default="unknown")
    client_agent: Mapped[str] = mapped_column(Text, default="unknown")
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_timestamp", "timestamp"),
        Index("ix_audit_logs_actor_timestamp", "actor_id", "timestamp"),
        Index("ix_audit_logs_type_timestamp", "event_type", "timestamp"),
        Index("ix_audit_logs_severity_timestamp", "severity", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.id} {self.event_type} {self.severity}>"


class ImmutableRecordError(RuntimeError):
    """Raised when a persisted audit record is modified or deleted."""


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise ImmutableRecordError(f"audit record {target.id} is write-once")


@event.listens_for(AuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise ImmutableRecordError(f"audit record {target.id} is write-once")
