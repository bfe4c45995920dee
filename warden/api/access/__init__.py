"""
WARDEN - Access & Audit Module

Role-based access control, identity resolution and the audit trail.

Components:
- rbac.py: Roles, permissions, access requirements and their evaluation
- identity.py: Per-session identity context and role records
- client.py: Client IP, agent and session id
- audit.py: Audit logger, change sets, severity rules, redaction
- store.py: Append-only audit event store
- query.py: Filtered retrieval and export
- statistics.py: Time-windowed statistics

Usage:
    from warden.api.access import (
        MinimumRole,
        Permission,
        PermissionSet,
        Role,
        evaluate,
    )

    allowed = evaluate(identity_context.current(), PermissionSet(
        [Permission.VIEW_DASHBOARD, Permission.EDIT_ORDERS],
    ))
"""

from warden.api.access.rbac import (
    DEFAULT_ROLE,
    ROLE_LEVELS,
    ROLE_PERMISSIONS,
    AccessRequirement,
    MatchMode,
    MinimumRole,
    Permission,
    PermissionSet,
    Role,
    SinglePermission,
    can_assign_role,
    evaluate,
    has_all_permissions,
    has_any_permission,
    has_permission,
    has_role_level,
    level_of,
    permissions_for,
)

from warden.api.access.identity import (
    Identity,
    IdentityContext,
    IdentityTransition,
    Principal,
    RoleRecordSnapshot,
    RoleRecordStore,
)

from warden.api.access.client import (
    ClientContext,
    ClientIPResolver,
    get_or_create_session_id,
    new_session_id,
)

from warden.api.access.audit import (
    AuditEvent,
    AuditEventType,
    AuditLogger,
    AuditSeverity,
    compute_changes,
    determine_severity,
    sanitize_data,
)

from warden.api.access.store import (
    AuditStore,
    AuditStoreError,
    ImmutableRecordError,
)

from warden.api.access.query import (
    AuditLogFilter,
    AuditQueryEngine,
    export_csv,
    export_json,
)

from warden.api.access.statistics import (
    AuditStatistics,
    AuditStatisticsAggregator,
    StatisticsWindow,
)

__all__ = [
    # RBAC
    "DEFAULT_ROLE",
    "ROLE_LEVELS",
    "ROLE_PERMISSIONS",
    "AccessRequirement",
    "MatchMode",
    "MinimumRole",
    "Permission",
    "PermissionSet",
    "Role",
    "SinglePermission",
    "can_assign_role",
    "evaluate",
    "has_all_permissions",
    "has_any_permission",
    "has_permission",
    "has_role_level",
    "level_of",
    "permissions_for",
    # Identity
    "Identity",
    "IdentityContext",
    "IdentityTransition",
    "Principal",
    "RoleRecordSnapshot",
    "RoleRecordStore",
    # Client
    "ClientContext",
    "ClientIPResolver",
    "get_or_create_session_id",
    "new_session_id",
    # Audit
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
    "AuditSeverity",
    "compute_changes",
    "determine_severity",
    "sanitize_data",
    "AuditStore",
    "AuditStoreError",
    "ImmutableRecordError",
    "AuditLogFilter",
    "AuditQueryEngine",
    "export_csv",
    "export_json",
    "AuditStatistics",
    "AuditStatisticsAggregator",
    "StatisticsWindow",
]
