"""
Unit tests for Role-Based Access Control (RBAC) permission checks.

Tests cover:
- The role -> permission table
- can_edit / can_delete / can_create per entity key
- Unknown roles and entity keys
- Capability maps returned to clients
"""

import pytest

from api.src.middleware.rbac import (
    ENTITY_KEYS,
    ROLE_PERMISSIONS,
    can_create,
    can_delete,
    can_edit,
    check_user_permission,
    entity_capabilities,
    get_user_permissions,
    permission_for,
)
from api.src.models.auth import Permission, Role


# ============================================================================
# ROLE TABLE
# ============================================================================


class TestRolePermissions:
    """Test the static role table."""

    def test_admin_has_every_permission(self):
        assert get_user_permissions(Role.ADMIN) == set(Permission)

    def test_manager_has_everything_but_settings(self):
        permissions = get_user_permissions(Role.MANAGER)
        assert Permission.EDIT_SETTINGS not in permissions
        assert permissions == set(Permission) - {Permission.EDIT_SETTINGS}

    def test_user_can_edit_commercial_records_only(self):
        assert get_user_permissions(Role.USER) == {
            Permission.EDIT_QUOTATIONS,
            Permission.EDIT_INVOICES,
            Permission.EDIT_CUSTOMERS,
            Permission.EDIT_VENDORS,
            Permission.EDIT_PURCHASE_ORDERS,
        }

    def test_viewer_has_no_permissions(self):
        assert get_user_permissions(Role.VIEWER) == set()

    def test_unknown_role_has_no_permissions(self):
        assert get_user_permissions("superuser") == set()

    def test_returned_set_is_a_copy(self):
        permissions = get_user_permissions(Role.USER)
        permissions.add(Permission.EDIT_SETTINGS)
        assert Permission.EDIT_SETTINGS not in ROLE_PERMISSIONS[Role.USER]


# ============================================================================
# ENTITY CHECKS
# ============================================================================


class TestEntityChecks:
    """Test can_edit / can_delete / can_create."""

    def test_permission_for_builds_permission_names(self):
        assert permission_for("edit", "customers") is Permission.EDIT_CUSTOMERS
        assert permission_for("delete", "purchase_orders") is Permission.DELETE_PURCHASE_ORDERS

    def test_permission_for_unknown_key(self):
        assert permission_for("edit", "spaceships") is None
        assert permission_for("delete", "settings") is None

    def test_user_can_edit_but_not_delete_customers(self):
        assert can_edit(Role.USER, "customers")
        assert not can_delete(Role.USER, "customers")

    def test_user_cannot_touch_payslips(self):
        assert not can_edit(Role.USER, "payslips")
        assert not can_delete(Role.USER, "payslips")

    def test_manager_can_delete_receipts(self):
        assert can_delete(Role.MANAGER, "receipts")

    def test_project_billing_is_for_managers(self):
        for key in ("usage_entries", "monthly_invoices"):
            assert can_edit(Role.MANAGER, key)
            assert can_delete(Role.MANAGER, key)
            assert not can_edit(Role.USER, key)

    def test_only_admin_edits_settings(self):
        assert can_edit(Role.ADMIN, "settings")
        assert not can_edit(Role.MANAGER, "settings")
        assert check_user_permission(Role.ADMIN, Permission.EDIT_SETTINGS)

    def test_unknown_entity_key_is_denied(self):
        assert not can_edit(Role.ADMIN, "spaceships")
        assert not can_delete(Role.ADMIN, "spaceships")

    @pytest.mark.parametrize("role", list(Role))
    def test_create_follows_edit(self, role):
        for key in ENTITY_KEYS:
            assert can_create(role, key) == can_edit(role, key)


# ============================================================================
# CAPABILITIES
# ============================================================================


class TestEntityCapabilities:
    """Test the capability map served by /auth/permissions."""

    def test_every_entity_key_is_present(self):
        capabilities = entity_capabilities(Role.USER)
        assert list(capabilities) == ENTITY_KEYS

    def test_user_capabilities(self):
        capabilities = entity_capabilities(Role.USER)
        assert capabilities["invoices"] == {"canEdit": True, "canDelete": False, "canCreate": True}
        assert capabilities["employees"] == {"canEdit": False, "canDelete": False, "canCreate": False}

    def test_admin_capabilities(self):
        capabilities = entity_capabilities(Role.ADMIN)
        assert all(flags["canEdit"] for flags in capabilities.values())
        # settings cannot be deleted by anyone
        assert capabilities["settings"]["canDelete"] is False
