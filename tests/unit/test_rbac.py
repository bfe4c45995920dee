"""
Tests for WARDEN Role-Based Access Control
==========================================

Tests the role registry and the access evaluator.
"""

import dataclasses
from itertools import product

import pytest

from warden.api.access.identity import Identity
from warden.api.access.rbac import (
    DEFAULT_ROLE,
    ROLE_LEVELS,
    ROLE_PERMISSIONS,
    UNRANKED_LEVEL,
    MatchMode,
    MinimumRole,
    Permission,
    PermissionSet,
    Role,
    SinglePermission,
    can_assign_role,
    coerce_role,
    describe_requirement,
    evaluate,
    level_of,
    permissions_for,
    roles_at_or_below,
)


def make_identity(role, uid="u1"):
    return Identity(id=uid, display_label=f"{uid}@example.com", role=role)


ALL_REQUIREMENTS = [
    SinglePermission(Permission.VIEW_DASHBOARD),
    PermissionSet([Permission.VIEW_DASHBOARD], MatchMode.ANY),
    PermissionSet([Permission.VIEW_DASHBOARD], MatchMode.ALL),
    PermissionSet([], MatchMode.ALL),
    MinimumRole(Role.VIEWER),
]


class TestRoleRegistry:
    """Tests for role permissions and levels."""

    def test_super_admin_has_every_permission(self):
        """Super admin's set equals the full enumeration."""
        assert permissions_for(Role.SUPER_ADMIN) == frozenset(Permission)

    @pytest.mark.parametrize("role", [Role.VIEWER, Role.MODERATOR, Role.ADMIN])
    def test_other_roles_are_proper_subsets(self, role):
        """Every other role holds strictly less than super admin."""
        assert permissions_for(role) < permissions_for(Role.SUPER_ADMIN)

    def test_permission_counts(self):
        """Role sets grow with the hierarchy."""
        assert len(permissions_for(Role.VIEWER)) == 6
        assert len(permissions_for(Role.MODERATOR)) == 11
        assert len(permissions_for(Role.ADMIN)) == 22
        assert len(permissions_for(Role.SUPER_ADMIN)) == len(Permission)

    def test_sets_are_nested(self):
        """A higher role holds every permission of the roles below it."""
        ordered = sorted(Role, key=level_of)
        for lower, higher in zip(ordered, ordered[1:]):
            assert permissions_for(lower) <= permissions_for(higher)

    def test_levels_are_strictly_increasing(self):
        """Levels form a total order, lowest to highest."""
        levels = [level_of(r) for r in (Role.VIEWER, Role.MODERATOR, Role.ADMIN, Role.SUPER_ADMIN)]
        assert levels == [1, 2, 3, 4]
        assert len(set(ROLE_LEVELS.values())) == len(Role)

    def test_admin_cannot_delete_or_manage_roles(self):
        admin = permissions_for(Role.ADMIN)
        assert Permission.DELETE_ORDERS not in admin
        assert Permission.MANAGE_ROLES not in admin
        assert Permission.VIEW_AUDIT_LOGS in admin

    @pytest.mark.parametrize("role", [None, "", "owner", "ADMIN ", 42])
    def test_unknown_role_fails_closed(self, role):
        """Unknown roles rank lowest and carry nothing."""
        if role == "ADMIN ":
            # Case and whitespace are normalized
            assert coerce_role(role) is Role.ADMIN
            return
        assert coerce_role(role) is None
        assert level_of(role) == UNRANKED_LEVEL
        assert permissions_for(role) == frozenset()

    def test_role_strings_resolve(self):
        assert permissions_for("moderator") == ROLE_PERMISSIONS[Role.MODERATOR]
        assert level_of("super_admin") == 4

    def test_default_role_is_lowest(self):
        assert DEFAULT_ROLE is Role.VIEWER
        assert level_of(DEFAULT_ROLE) == min(ROLE_LEVELS.values())

    def test_roles_at_or_below(self):
        assert roles_at_or_below(Role.MODERATOR) == (Role.VIEWER, Role.MODERATOR)
        assert roles_at_or_below(None) == ()


class TestAccessEvaluator:
    """Tests for evaluate()."""

    @pytest.mark.parametrize("requirement", ALL_REQUIREMENTS)
    def test_absent_identity_is_always_denied(self, requirement):
        assert evaluate(None, requirement) is False

    def test_single_permission(self):
        viewer = make_identity(Role.VIEWER)
        assert evaluate(viewer, SinglePermission(Permission.VIEW_ORDERS))
        assert not evaluate(viewer, SinglePermission(Permission.EDIT_ORDERS))

    def test_moderator_all_manage_users_is_denied(self):
        """Moderator lacks ManageUsers."""
        moderator = make_identity(Role.MODERATOR)
        requirement = PermissionSet([Permission.MANAGE_USERS], MatchMode.ALL)
        assert evaluate(moderator, requirement) is False

    def test_moderator_any_dashboard_or_edit_orders(self):
        """Moderator holds EditOrders, so ANY passes."""
        moderator = make_identity(Role.MODERATOR)
        requirement = PermissionSet(
            [Permission.VIEW_DASHBOARD, Permission.EDIT_ORDERS],
            MatchMode.ANY,
        )
        assert evaluate(moderator, requirement) is True

    def test_all_mode_requires_every_permission(self):
        moderator = make_identity(Role.MODERATOR)
        assert evaluate(moderator, PermissionSet(
            [Permission.EDIT_ORDERS, Permission.SEND_MESSAGES], MatchMode.ALL,
        ))
        assert not evaluate(moderator, PermissionSet(
            [Permission.EDIT_ORDERS, Permission.DELETE_ORDERS], MatchMode.ALL,
        ))

    def test_empty_permission_set(self):
        """ANY over nothing fails; ALL over nothing passes for a known identity."""
        viewer = make_identity(Role.VIEWER)
        assert not evaluate(viewer, PermissionSet([], MatchMode.ANY))
        assert evaluate(viewer, PermissionSet([], MatchMode.ALL))

    def test_mode_accepts_string(self):
        requirement = PermissionSet([Permission.VIEW_ORDERS], "all")
        assert requirement.mode is MatchMode.ALL
        assert isinstance(requirement.permissions, tuple)

    def test_minimum_role_follows_levels(self):
        """Identity with r1 passes MinimumRole(r2) iff level(r1) >= level(r2)."""
        for held, required in product(Role, Role):
            identity = make_identity(held)
            expected = level_of(held) >= level_of(required)
            assert evaluate(identity, MinimumRole(required)) is expected

    def test_unknown_role_identity_is_denied(self):
        nobody = make_identity(None)
        assert nobody.permissions == frozenset()
        assert not evaluate(nobody, MinimumRole(Role.VIEWER))
        assert not evaluate(nobody, SinglePermission(Permission.VIEW_DASHBOARD))

    def test_unrecognised_requirement_is_denied(self):
        assert evaluate(make_identity(Role.SUPER_ADMIN), object()) is False

    def test_describe_requirement(self):
        assert describe_requirement(SinglePermission(Permission.MANAGE_ROLES)) == "permission manage_roles"
        assert describe_requirement(MinimumRole(Role.ADMIN)) == "role admin or higher"
        assert "(all)" in describe_requirement(
            PermissionSet([Permission.VIEW_AUDIT_LOGS, Permission.EXPORT_REPORTS], MatchMode.ALL)
        )


class TestIdentityPermissions:
    """Permissions are derived from the role and cannot be assigned."""

    def test_permissions_follow_role(self):
        identity = make_identity(Role.ADMIN)
        assert identity.permissions == ROLE_PERMISSIONS[Role.ADMIN]

    def test_permissions_cannot_be_set(self):
        identity = make_identity(Role.VIEWER)
        with pytest.raises(AttributeError):
            identity.permissions = frozenset(Permission)

    def test_identity_is_frozen(self):
        identity = make_identity(Role.VIEWER)
        with pytest.raises(dataclasses.FrozenInstanceError):
            identity.role = Role.SUPER_ADMIN

    def test_to_dict(self):
        data = make_identity(None).to_dict()
        assert data["role"] == "unknown"
        assert data["permissions"] == []


class TestRoleAssignment:
    """Tests for can_assign_role()."""

    def test_super_admin_can_assign_any_role(self):
        root = make_identity(Role.SUPER_ADMIN)
        assert all(can_assign_role(root, r) for r in Role)

    def test_without_manage_roles_nothing_is_assignable(self):
        admin = make_identity(Role.ADMIN)
        assert not any(can_assign_role(admin, r) for r in Role)

    def test_unknown_target_role(self):
        root = make_identity(Role.SUPER_ADMIN)
        assert not can_assign_role(root, "overlord")

    def test_absent_identity(self):
        assert not can_assign_role(None, Role.VIEWER)
