"""
WARDEN - Audit Query Engine

Filtered, bounded retrieval of audit events plus offline export.
Malformed filter input never fails a query: the offending constraint is
dropped and the query proceeds, still bounded by the result limit.
"""

import csv
import hashlib
import json
import logging
from datetime import datetime, timezone
from io import StringIO
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from warden.api.access.audit import AuditEvent, AuditSeverity
from warden.api.access.store import AuditStore
from warden.api.config import settings

logger = logging.getLogger(__name__)


class AuditLogFilter(BaseModel):
    """Optional constraints for an audit query. All constraints are ANDed."""

    actor_id: Optional[str] = None
    event_type: Optional[str] = None
    severity: Optional[AuditSeverity] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = None

    @field_validator("actor_id", "event_type", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("severity", mode="before")
    @classmethod
    def _upper_severity(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    @field_validator("actor_id", "event_type", "severity", "start_date", "end_date", "limit", mode="wrap")
    @classmethod
    def _ignore_invalid(cls, value: Any, handler, info) -> Any:
        try:
            return handler(value)
        except ValidationError:
            logger.warning(f"Ignoring invalid audit filter {info.field_name}={value!r}")
            return None

    @model_validator(mode="after")
    def _normalize(self) -> "AuditLogFilter":
        if self.start_date is not None and self.start_date.tzinfo is None:
            self.start_date = self.start_date.replace(tzinfo=timezone.utc)
        if self.end_date is not None and self.end_date.tzinfo is None:
            self.end_date = self.end_date.replace(tzinfo=timezone.utc)

        if self.start_date and self.end_date and self.start_date > self.end_date:
            logger.warning(
                f"Ignoring inverted audit date range {self.start_date.isoformat()} > "
                f"{self.end_date.isoformat()}"
            )
            self.start_date = None
            self.end_date = None

        if self.limit is None or self.limit < 1:
            self.limit = settings.AUDIT_QUERY_DEFAULT_LIMIT
        self.limit = min(self.limit, settings.AUDIT_QUERY_MAX_LIMIT)
        return self


FilterLike = Union[AuditLogFilter, Mapping[str, Any], None]


def coerce_filter(audit_filter: FilterLike) -> AuditLogFilter:
    """Build a filter from caller input; unusable input means no constraints."""
    if isinstance(audit_filter, AuditLogFilter):
        return audit_filter
    if audit_filter is None:
        return AuditLogFilter()
    if not isinstance(audit_filter, Mapping):
        logger.warning(f"Ignoring audit filter of type {type(audit_filter).__name__}")
        return AuditLogFilter()

    try:
        return AuditLogFilter.model_validate(dict(audit_filter))
    except (ValidationError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring malformed audit filter: {e}")
        return AuditLogFilter()


class AuditQueryEngine:
    """Read side of the audit trail."""

    def __init__(self, store: AuditStore):
        self.store = store

    async def get_audit_logs(self, audit_filter: FilterLike = None) -> List[AuditEvent]:
        """
        Events matching the filter, newest first, at most ``limit`` of them.

        A store failure yields an empty list.
        """
        try:
            criteria = coerce_filter(audit_filter)
            return await self.store.query(
                actor_id=criteria.actor_id,
                event_type=criteria.event_type,
                severity=criteria.severity,
                start=criteria.start_date,
                end=criteria.end_date,
                limit=criteria.limit,
            )
        except Exception as e:
            logger.error(f"Error getting audit logs: {e}", exc_info=True)
            return []


# ============================================================
# Export
# ============================================================


CSV_COLUMNS = ["Timestamp", "Event Type", "Severity", "User", "Details"]


def compact_details(details: Mapping) -> str:
    return json.dumps(details, separators=(",", ":"), sort_keys=True, default=str)


def export_csv(events: Iterable[AuditEvent]) -> str:
    """Flat tabular rendering for offline review."""
    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for event in events:
        writer.writerow([
            event.timestamp.isoformat(),
            event.event_type,
            event.severity.value,
            event.actor,
            compact_details(event.details),
        ])
    return buffer.getvalue()


def export_json(
    events: Iterable[AuditEvent],
    audit_filter: Optional[AuditLogFilter] = None,
    include_hash: bool = True,
) -> str:
    """JSON export with an integrity hash over the canonical payload."""
    events = list(events)
    export_data = {
        "export_timestamp": datetime.now(timezone.utc).isoformat(),
        "filter": audit_filter.model_dump(mode="json") if audit_filter else {},
        "event_count": len(events),
        "events": [e.to_dict() for e in events],
    }
    if include_hash:
        content = json.dumps(export_data, sort_keys=True, default=str)
        export_data["integrity_hash"] = hashlib.sha256(content.encode()).hexdigest()

    return json.dumps(export_data, indent=2, default=str)


def verify_export(payload: str) -> bool:
    """Check a JSON export's integrity hash."""
    export_data = json.loads(payload)
    expected = export_data.pop("integrity_hash", None)
    if expected is None:
        return False
    content = json.dumps(export_data, sort_keys=True, default=str)
    return hashlib.sha256(content.encode()).hexdigest() == expected
