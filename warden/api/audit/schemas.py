"""
Audit Schemas

Pydantic models for the audit reporting endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from warden.api.access.audit import AuditEvent


class AuditEventResponse(BaseModel):
    """One audit record."""

    id: Optional[int] = None
    event_type: str
    severity: str
    actor_id: str
    actor_label: str
    actor_role: str
    timestamp: datetime
    details: Dict[str, Any] = {}
    client_ip: str
    client_agent: str
    session_id: str
    source: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditEventResponse":
        return cls(
            id=event.id,
            event_type=event.event_type,
            severity=event.severity.value,
            actor_id=event.actor_id,
            actor_label=event.actor_label,
            actor_role=event.actor_role,
            timestamp=event.timestamp,
            details=event.details,
            client_ip=event.client_ip,
            client_agent=event.client_agent,
            session_id=event.session_id,
            source=event.source,
        )


class AuditLogListResponse(BaseModel):
    """Audit records, newest first."""

    events: List[AuditEventResponse]
    count: int
    limit: int
