"""
WARDEN - Role-Based Access Control (RBAC)

Defines roles, permissions, the role hierarchy and the access evaluator.
This is the authoritative source for access control.

Permissions are never granted directly: an identity's permission set is
always derived from its role through ``permissions_for``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, FrozenSet, Optional, Tuple, Union

if TYPE_CHECKING:
    from warden.api.access.identity import Identity


# ============================================================
# Permissions
# ============================================================


class Permission(str, Enum):
    """All permissions in the system."""

    # Dashboard & Reports
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_ANALYTICS = "view_analytics"
    EXPORT_REPORTS = "export_reports"

    # Orders
    VIEW_ORDERS = "view_orders"
    EDIT_ORDERS = "edit_orders"
    DELETE_ORDERS = "delete_orders"
    BULK_ORDER_OPERATIONS = "bulk_order_operations"

    # Customers
    VIEW_CUSTOMERS = "view_customers"
    EDIT_CUSTOMERS = "edit_customers"
    DELETE_CUSTOMERS = "delete_customers"
    VIEW_CUSTOMER_DETAILS = "view_customer_details"

    # Inventory
    VIEW_INVENTORY = "view_inventory"
    EDIT_INVENTORY = "edit_inventory"
    BULK_INVENTORY_OPERATIONS = "bulk_inventory_operations"
    VIEW_STOCK_REPORTS = "view_stock_reports"

    # System
    VIEW_SYSTEM_HEALTH = "view_system_health"
    VIEW_ERROR_LOGS = "view_error_logs"

    # Communication
    MANAGE_NOTIFICATIONS = "manage_notifications"
    SEND_MESSAGES = "send_messages"
    MANAGE_TEMPLATES = "manage_templates"
    VIEW_COMMUNICATION_HISTORY = "view_communication_history"

    # Content & SEO
    MANAGE_SEO = "manage_seo"
    BULK_CONTENT_OPERATIONS = "bulk_content_operations"

    # Administration
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    MANAGE_ROLES = "manage_roles"


# ============================================================
# Roles
# ============================================================


class Role(str, Enum):
    """Admin roles, lowest to highest."""

    VIEWER = "viewer"
    MODERATOR = "moderator"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# Role assigned to principals without a role record
DEFAULT_ROLE = Role.VIEWER

# Level for unknown or unset roles; below every real role
UNRANKED_LEVEL = 0

ROLE_LEVELS: dict[Role, int] = {
    Role.VIEWER: 1,
    Role.MODERATOR: 2,
    Role.ADMIN: 3,
    Role.SUPER_ADMIN: 4,
}


# ============================================================
# Role Permission Mappings
# ============================================================


_VIEWER_PERMISSIONS = frozenset({
    Permission.VIEW_DASHBOARD,
    Permission.VIEW_ANALYTICS,
    Permission.VIEW_ORDERS,
    Permission.VIEW_CUSTOMERS,
    Permission.VIEW_INVENTORY,
    Permission.VIEW_COMMUNICATION_HISTORY,
})

_MODERATOR_PERMISSIONS = _VIEWER_PERMISSIONS | {
    Permission.EDIT_ORDERS,
    Permission.VIEW_CUSTOMER_DETAILS,
    Permission.EDIT_INVENTORY,
    Permission.SEND_MESSAGES,
    Permission.MANAGE_SEO,
}

_ADMIN_PERMISSIONS = _MODERATOR_PERMISSIONS | {
    # Reports
    Permission.EXPORT_REPORTS,

    # Orders (no delete)
    Permission.BULK_ORDER_OPERATIONS,

    # Customers (no delete)
    Permission.EDIT_CUSTOMERS,

    # Inventory
    Permission.BULK_INVENTORY_OPERATIONS,
    Permission.VIEW_STOCK_REPORTS,

    # System (read only)
    Permission.VIEW_SYSTEM_HEALTH,
    Permission.VIEW_ERROR_LOGS,

    # Communication
    Permission.MANAGE_NOTIFICATIONS,
    Permission.MANAGE_TEMPLATES,

    # Content
    Permission.BULK_CONTENT_OPERATIONS,

    # Audit (read only)
    Permission.VIEW_AUDIT_LOGS,
}

ROLE_PERMISSIONS: dict[Role, FrozenSet[Permission]] = {
    Role.VIEWER: _VIEWER_PERMISSIONS,
    Role.MODERATOR: frozenset(_MODERATOR_PERMISSIONS),
    Role.ADMIN: frozenset(_ADMIN_PERMISSIONS),
    Role.SUPER_ADMIN: frozenset(Permission),
}


# ============================================================
# Role Registry
# ============================================================


def coerce_role(role: Union[Role, str, None]) -> Optional[Role]:
    """Map a role value to a Role, or None if it is not a known role."""
    if isinstance(role, Role):
        return role
    if isinstance(role, str):
        try:
            return Role(role.strip().lower())
        except ValueError:
            return None
    return None


def permissions_for(role: Union[Role, str, None]) -> FrozenSet[Permission]:
    """Get the permission set for a role. Unknown roles get nothing."""
    resolved = coerce_role(role)
    if resolved is None:
        return frozenset()
    return ROLE_PERMISSIONS[resolved]


def level_of(role: Union[Role, str, None]) -> int:
    """Get the hierarchy level for a role. Unknown roles rank lowest."""
    resolved = coerce_role(role)
    if resolved is None:
        return UNRANKED_LEVEL
    return ROLE_LEVELS[resolved]


def roles_at_or_below(role: Union[Role, str, None]) -> Tuple[Role, ...]:
    """Roles whose level does not exceed the given role's level."""
    ceiling = level_of(role)
    return tuple(r for r in Role if ROLE_LEVELS[r] <= ceiling)


# ============================================================
# Access Requirements
# ============================================================


class MatchMode(str, Enum):
    """How a permission list is matched."""

    ANY = "any"
    ALL = "all"


@dataclass(frozen=True)
class SinglePermission:
    """Requires one specific permission."""

    permission: Permission


@dataclass(frozen=True)
class PermissionSet:
    """Requires any or all of a list of permissions."""

    permissions: Tuple[Permission, ...]
    mode: MatchMode = MatchMode.ANY

    def __post_init__(self):
        object.__setattr__(self, "permissions", tuple(self.permissions))
        object.__setattr__(self, "mode", MatchMode(self.mode))


@dataclass(frozen=True)
class MinimumRole:
    """Requires a role at or above the given level."""

    role: Role


AccessRequirement = Union[SinglePermission, PermissionSet, MinimumRole]


# ============================================================
# Access Evaluator
# ============================================================


def has_permission(identity: Optional["Identity"], permission: Permission) -> bool:
    """Check if identity has a specific permission."""
    if identity is None:
        return False
    return permission in identity.permissions


def has_any_permission(identity: Optional["Identity"], permissions) -> bool:
    """Check if identity has any of the specified permissions."""
    if identity is None:
        return False
    return any(p in identity.permissions for p in permissions)


def has_all_permissions(identity: Optional["Identity"], permissions) -> bool:
    """Check if identity has all of the specified permissions."""
    if identity is None:
        return False
    return all(p in identity.permissions for p in permissions)


def has_role_level(identity: Optional["Identity"], minimum_role: Role) -> bool:
    """Check if identity's role is at or above the minimum role."""
    if identity is None:
        return False
    return level_of(identity.role) >= level_of(minimum_role)


def evaluate(identity: Optional["Identity"], requirement: AccessRequirement) -> bool:
    """
    Decide whether an identity satisfies an access requirement.

    Pure and side-effect free. A missing identity is always denied.
    Unrecognised requirement shapes are denied.
    """
    if identity is None:
        return False

    if isinstance(requirement, SinglePermission):
        return has_permission(identity, requirement.permission)

    if isinstance(requirement, PermissionSet):
        if requirement.mode is MatchMode.ALL:
            return has_all_permissions(identity, requirement.permissions)
        return has_any_permission(identity, requirement.permissions)

    if isinstance(requirement, MinimumRole):
        return has_role_level(identity, requirement.role)

    return False


def describe_requirement(requirement: AccessRequirement) -> str:
    """Human-readable summary of a requirement, for denial messages."""
    if isinstance(requirement, SinglePermission):
        return f"permission {requirement.permission.value}"
    if isinstance(requirement, PermissionSet):
        names = ", ".join(p.value for p in requirement.permissions)
        return f"permissions {names} ({requirement.mode.value})"
    if isinstance(requirement, MinimumRole):
        return f"role {requirement.role.value} or higher"
    return "unknown requirement"


# ============================================================
# Role Assignment Validation
# ============================================================


def can_assign_role(identity: Optional["Identity"], target_role: Union[Role, str]) -> bool:
    """Check if identity may grant target role to someone else."""
    if coerce_role(target_role) is None:
        return False
    if not has_permission(identity, Permission.MANAGE_ROLES):
        return False
    return level_of(identity.role) >= level_of(target_role)
