"""
WARDEN - Audit Logging System

Append-only audit trail for administrative and security-relevant actions.
Every entry point follows "log and continue": failures are logged and
reported as False, never raised into the calling business operation.
"""

import asyncio
import dataclasses
import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Optional, Union

from pydantic import BaseModel

from warden.api.access.client import UNKNOWN, ClientContext
from warden.api.access.identity import Identity, IdentityContext, IdentityTransition
from warden.api.config import settings
from warden.core.event_bus import Event, EventBus, EventType

if TYPE_CHECKING:
    from warden.api.access.store import AuditStore


logger = logging.getLogger(__name__)


# ============================================================
# Audit Event Types
# ============================================================


class AuditEventType(str, Enum):
    """Categories of auditable events."""

    # Authentication
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"

    # User Management
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    USER_ROLE_CHANGED = "USER_ROLE_CHANGED"
    USER_STATUS_CHANGED = "USER_STATUS_CHANGED"

    # Orders
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_UPDATED = "ORDER_UPDATED"
    ORDER_DELETED = "ORDER_DELETED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    BULK_ORDER_UPDATE = "BULK_ORDER_UPDATE"

    # Customers
    CUSTOMER_CREATED = "CUSTOMER_CREATED"
    CUSTOMER_UPDATED = "CUSTOMER_UPDATED"
    CUSTOMER_DELETED = "CUSTOMER_DELETED"
    CUSTOMER_MERGED = "CUSTOMER_MERGED"

    # Inventory
    INVENTORY_UPDATED = "INVENTORY_UPDATED"
    STOCK_ADJUSTED = "STOCK_ADJUSTED"
    BULK_STOCK_UPDATE = "BULK_STOCK_UPDATE"
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    PRODUCT_DELETED = "PRODUCT_DELETED"

    # System
    SYSTEM_SETTINGS_CHANGED = "SYSTEM_SETTINGS_CHANGED"
    BACKUP_CREATED = "BACKUP_CREATED"
    DATA_EXPORT = "DATA_EXPORT"
    DATA_IMPORT = "DATA_IMPORT"

    # Communication
    MESSAGE_SENT = "MESSAGE_SENT"
    NOTIFICATION_SENT = "NOTIFICATION_SENT"
    TEMPLATE_CREATED = "TEMPLATE_CREATED"
    TEMPLATE_UPDATED = "TEMPLATE_UPDATED"

    # Security
    PERMISSION_DENIED = "PERMISSION_DENIED"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    SECURITY_BREACH = "SECURITY_BREACH"

    # SEO
    SEO_SETTINGS_CHANGED = "SEO_SETTINGS_CHANGED"
    BULK_CONTENT_UPDATE = "BULK_CONTENT_UPDATE"
    META_DATA_UPDATED = "META_DATA_UPDATED"


class AuditSeverity(str, Enum):
    """Severity level of audit event."""

    LOW = "LOW"             # Routine operations
    MEDIUM = "MEDIUM"       # Notable actions
    HIGH = "HIGH"           # Sensitive actions
    CRITICAL = "CRITICAL"   # Security-relevant; escalated


EventTypeLike = Union[AuditEventType, str]
SeverityLike = Union[AuditSeverity, str]


def event_type_name(event_type: EventTypeLike) -> str:
    if isinstance(event_type, AuditEventType):
        return event_type.value
    return str(event_type)


def coerce_severity(severity: SeverityLike) -> AuditSeverity:
    if isinstance(severity, AuditSeverity):
        return severity
    return AuditSeverity(str(severity).upper())


def is_security_event_type(event_type: str) -> bool:
    """Security-flavoured event types, by name."""
    return "SECURITY" in event_type or "LOGIN" in event_type


# ============================================================
# Audit Event Structure
# ============================================================


@dataclass(frozen=True)
class AuditEvent:
    """Audit record. ``id`` is assigned by the store on persistence."""

    event_type: str
    severity: AuditSeverity
    actor_id: str
    actor_label: str
    actor_role: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    client_ip: str = UNKNOWN
    client_agent: str = UNKNOWN
    session_id: str = ""
    source: str = ""
    id: Optional[int] = None

    @property
    def actor(self) -> str:
        """Display key for the actor: label, falling back to id."""
        if self.actor_label and self.actor_label != UNKNOWN:
            return self.actor_label
        return self.actor_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage and export."""
        return {
            "id": self.id,
            "event_type": self.event_type,
            "severity": self.severity.value,
            "actor_id": self.actor_id,
            "actor_label": self.actor_label,
            "actor_role": self.actor_role,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
            "client_ip": self.client_ip,
            "client_agent": self.client_agent,
            "session_id": self.session_id,
            "source": self.source,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def compute_hash(self) -> str:
        """Compute SHA256 hash for integrity verification."""
        content = (
            f"{self.id}{self.timestamp.isoformat()}{self.actor_id}"
            f"{self.event_type}{self.severity.value}"
        )
        return hashlib.sha256(content.encode()).hexdigest()


# ============================================================
# Change Sets
# ============================================================


def _snapshot(record: Any) -> Optional[Dict[str, Any]]:
    """Flat field view of a record, restricted to its declared fields."""
    if record is None:
        return None
    if isinstance(record, BaseModel):
        declared = set(type(record).model_fields)
        return record.model_dump(include=declared)
    if dataclasses.is_dataclass(record) and not isinstance(record, type):
        return {f.name: getattr(record, f.name) for f in dataclasses.fields(record)}
    if isinstance(record, Mapping):
        return dict(record)
    raise TypeError(f"Cannot diff record of type {type(record).__name__}")


def compute_changes(before: Any, after: Any) -> Dict[str, Dict[str, Any]]:
    """
    Field-level diff of two flat records.

    Fields of ``after`` whose value differs from ``before`` are recorded,
    as are fields present in ``before`` but missing from ``after`` (with
    ``after`` None). If either side is missing the diff is empty.
    """
    before_fields = _snapshot(before)
    after_fields = _snapshot(after)
    if before_fields is None or after_fields is None:
        return {}

    changes: Dict[str, Dict[str, Any]] = {}

    for name, value in after_fields.items():
        if name not in before_fields or before_fields[name] != value:
            changes[name] = {"before": before_fields.get(name), "after": value}

    for name, value in before_fields.items():
        if name not in after_fields:
            changes[name] = {"before": value, "after": None}

    return changes


# ============================================================
# Severity Classification
# ============================================================


class FieldMatch(str, Enum):
    """How changed field names are compared with CRITICAL_FIELDS."""

    SUBSTRING = "substring"
    EXACT = "exact"


# Changes to any of these escalate a data change to CRITICAL
CRITICAL_FIELDS = ("role", "permissions", "isActive", "password", "email")

HIGH_IMPACT_RESOURCES = frozenset({"USER", "ADMIN", "SYSTEM"})

# More changed fields than this makes an otherwise routine change MEDIUM
MEDIUM_CHANGE_THRESHOLD = 5

# More affected ids than this makes a bulk operation HIGH
BULK_HIGH_SEVERITY_THRESHOLD = 100


def _normalize_field(name: str) -> str:
    return str(name).lower().replace("_", "").replace("-", "")


def _field_match_mode(match: Optional[Union[FieldMatch, str]]) -> FieldMatch:
    value = match if match is not None else settings.AUDIT_CRITICAL_FIELD_MATCH
    try:
        return FieldMatch(value)
    except ValueError:
        logger.warning(f"Unknown critical field match mode {value!r}, using substring")
        return FieldMatch.SUBSTRING


def is_critical_field(name: str, match: Optional[Union[FieldMatch, str]] = None) -> bool:
    """Case-insensitive check of a field name against CRITICAL_FIELDS."""
    mode = _field_match_mode(match)
    normalized = _normalize_field(name)
    for critical in CRITICAL_FIELDS:
        target = _normalize_field(critical)
        if mode is FieldMatch.EXACT and normalized == target:
            return True
        if mode is FieldMatch.SUBSTRING and target in normalized:
            return True
    return False


def determine_severity(
    resource_type: str,
    changes: Mapping,
    match: Optional[Union[FieldMatch, str]] = None,
) -> AuditSeverity:
    """
    Classify a data change. Rules apply in order; first match wins:

    1. any changed field is critical -> CRITICAL
    2. resource type is high impact  -> HIGH
    3. more than 5 changed fields    -> MEDIUM
    4. otherwise                     -> LOW
    """
    if any(is_critical_field(name, match) for name in changes):
        return AuditSeverity.CRITICAL

    if str(resource_type).upper() in HIGH_IMPACT_RESOURCES:
        return AuditSeverity.HIGH

    if len(changes) > MEDIUM_CHANGE_THRESHOLD:
        return AuditSeverity.MEDIUM

    return AuditSeverity.LOW


# ============================================================
# Redaction & Size Bounds
# ============================================================


REDACTED = "[REDACTED]"

SENSITIVE_FIELD_MARKERS = ("password", "token", "secret", "key", "creditCard")


def is_sensitive_field(name: str) -> bool:
    normalized = _normalize_field(name)
    return any(_normalize_field(marker) in normalized for marker in SENSITIVE_FIELD_MARKERS)


def sanitize_data(data: Any) -> Any:
    """Copy of a flat record with sensitive field values redacted."""
    if not isinstance(data, Mapping):
        return data
    return {
        key: REDACTED if is_sensitive_field(key) else value
        for key, value in data.items()
    }


def _redact_changes(changes: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {
        name: {"before": REDACTED, "after": REDACTED} if is_sensitive_field(name) else change
        for name, change in changes.items()
    }


def bound_details(details: Optional[Mapping], max_bytes: Optional[int] = None) -> Dict[str, Any]:
    """JSON-safe copy of details, replaced by a preview if oversized."""
    limit = max_bytes if max_bytes is not None else settings.AUDIT_DETAILS_MAX_BYTES
    encoded = json.dumps(dict(details or {}), separators=(",", ":"), default=str)
    size = len(encoded.encode("utf-8"))
    if size <= limit:
        return json.loads(encoded)

    preview = encoded.encode("utf-8")[: max(limit // 2, 0)].decode("utf-8", errors="ignore")
    return {"truncated": True, "originalSize": size, "preview": preview}


# ============================================================
# Audit Logger
# ============================================================


ANONYMOUS_ACTOR_ID = "anonymous"


class AuditLogger:
    """
    Central audit logging service.

    All audit events flow through this class. It reads the acting
    identity from the IdentityContext it was given and the client details
    from its ClientContext.
    """

    def __init__(
        self,
        store: "AuditStore",
        identity: Optional[IdentityContext] = None,
        client: Optional[ClientContext] = None,
        source: Optional[str] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.identity = identity
        self.client = client or ClientContext()
        self.source = source or settings.AUDIT_SOURCE
        self.bus = bus
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def log_event(
        self,
        event_type: EventTypeLike,
        details: Optional[Mapping] = None,
        severity: SeverityLike = AuditSeverity.LOW,
        *,
        actor: Optional[Identity] = None,
        escalate: bool = True,
    ) -> bool:
        """
        Log an audit event.

        A CRITICAL event is followed by an independent security event
        for the same type, unless ``escalate`` is False.
        """
        type_name = event_type_name(event_type)
        try:
            level = coerce_severity(severity)
            event = await self._build_event(type_name, details, level, actor)
            stored = await self.store.append(event)
        except Exception as e:
            logger.error(f"Error logging audit event {type_name}: {e}", exc_info=True)
            return False

        await self._emit(stored)

        if escalate and level is AuditSeverity.CRITICAL:
            if not await self.log_security_event(type_name, details, actor=actor):
                logger.error(f"Security escalation for {type_name} was not recorded")

        return True

    async def log_security_event(
        self,
        event_type: EventTypeLike,
        details: Optional[Mapping] = None,
        *,
        actor: Optional[Identity] = None,
    ) -> bool:
        """Log a CRITICAL security event flagged for review."""
        try:
            security_details = {
                **dict(details or {}),
                "securityLevel": "HIGH",
                "requiresReview": True,
                "alertSent": False,
            }
        except Exception as e:
            logger.error(f"Invalid details for security event {event_type_name(event_type)}: {e}")
            return False
        return await self.log_event(
            event_type,
            security_details,
            AuditSeverity.CRITICAL,
            actor=actor,
            escalate=False,
        )

    async def log_data_change(
        self,
        resource_type: str,
        resource_id: Any,
        before: Any,
        after: Any,
        action: str = "UPDATED",
    ) -> bool:
        """Log a before/after change; severity is derived from the diff."""
        try:
            changes = compute_changes(before, after)
            severity = determine_severity(resource_type, changes)
            details = {
                "resourceType": resource_type,
                "resourceId": resource_id,
                "action": action,
                "changes": _redact_changes(changes),
                "beforeData": sanitize_data(_snapshot(before)),
                "afterData": sanitize_data(_snapshot(after)),
                "changeCount": len(changes),
            }
        except Exception as e:
            logger.error(f"Error diffing {resource_type} {resource_id}: {e}", exc_info=True)
            return False

        event_type = f"{str(resource_type).upper()}_{str(action).upper()}"
        return await self.log_event(event_type, details, severity)

    async def log_bulk_operation(
        self,
        operation_type: str,
        resource_type: str,
        affected_ids: Iterable[Any],
        details: Optional[Mapping] = None,
    ) -> bool:
        """Log an operation applied to many resources at once."""
        try:
            ids = list(affected_ids)
            audit_details = {
                **dict(details or {}),
                "operationType": operation_type,
                "resourceType": resource_type,
                "affectedCount": len(ids),
                "affectedIds": ids[: settings.AUDIT_BULK_ID_SAMPLE],
                "totalAffected": len(ids),
            }
        except Exception as e:
            logger.error(f"Invalid bulk {operation_type} on {resource_type}: {e}")
            return False

        severity = (
            AuditSeverity.HIGH
            if len(ids) > BULK_HIGH_SEVERITY_THRESHOLD
            else AuditSeverity.MEDIUM
        )
        return await self.log_event(f"BULK_{str(operation_type).upper()}", audit_details, severity)

    async def log_user_action(
        self,
        action: str,
        resource_type: str,
        resource_id: Any,
        changes: Optional[Mapping] = None,
        severity: SeverityLike = AuditSeverity.LOW,
    ) -> bool:
        """Log an action on a resource with caller-chosen severity."""
        try:
            details = {
                "action": action,
                "resourceType": resource_type,
                "resourceId": resource_id,
                "changes": dict(changes or {}),
                "timestamp": self._clock().isoformat(),
            }
        except Exception as e:
            logger.error(f"Invalid changes for {resource_type} {action}: {e}")
            return False
        event_type = f"{str(resource_type).upper()}_{str(action).upper()}"
        return await self.log_event(event_type, details, severity)

    def attach(self, identity: IdentityContext) -> Callable[[], None]:
        """Record LOGIN / LOGOUT for transitions of an identity context."""

        async def on_transition(transition: IdentityTransition) -> None:
            if transition.identity is not None:
                await self.log_event(
                    AuditEventType.LOGIN,
                    {"sessionId": self.client.session_id},
                    actor=transition.identity,
                )
            elif transition.previous is not None:
                await self.log_event(
                    AuditEventType.LOGOUT,
                    {"sessionId": self.client.session_id},
                    actor=transition.previous,
                )

        return identity.subscribe(on_transition)

    async def _build_event(
        self,
        event_type: str,
        details: Optional[Mapping],
        severity: AuditSeverity,
        actor: Optional[Identity],
    ) -> AuditEvent:
        if actor is None and self.identity is not None:
            actor = self.identity.current()

        if actor is not None:
            actor_id, actor_label, actor_role = actor.id, actor.display_label, actor.role_name
        else:
            actor_id, actor_label, actor_role = ANONYMOUS_ACTOR_ID, UNKNOWN, UNKNOWN

        return AuditEvent(
            event_type=event_type,
            severity=severity,
            actor_id=actor_id,
            actor_label=actor_label,
            actor_role=actor_role,
            timestamp=self._clock(),
            details=bound_details(details),
            client_ip=await self._client_ip(),
            client_agent=self.client.user_agent or UNKNOWN,
            session_id=self.client.session_id,
            source=self.source,
        )

    async def _client_ip(self) -> str:
        try:
            return await asyncio.wait_for(
                self.client.resolve_ip(),
                timeout=settings.IP_LOOKUP_TIMEOUT_SEC,
            )
        except asyncio.TimeoutError:
            return UNKNOWN

    async def _emit(self, event: AuditEvent) -> None:
        logger.info(
            "AUDIT",
            extra={
                "audit_event": event.to_dict(),
                "event_hash": event.compute_hash(),
            },
        )
        if self.bus is not None:
            await self.bus.publish(Event(
                event_type=EventType.AUDIT_RECORDED,
                data={"event": event},
                source="audit_logger",
            ))
