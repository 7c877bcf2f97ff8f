"""
Role-Based Access Control (RBAC) for entity actions.

Provides:
- The static role -> permission table
- ``can_edit`` / ``can_delete`` / ``can_create`` checks per entity key
- ``PermissionChecker`` dependency enforcing a permission on a route
"""

import structlog
from typing import Dict, List, Optional, Set
from fastapi import Depends, Request

from api.src.dependencies import get_current_user, get_settings_dependency
from api.src.config import Settings
from api.src.errors import PermissionDeniedError
from api.src.models.auth import CurrentUser, Permission, Role

logger = structlog.get_logger(__name__)


# ============================================================================
# ROLE PERMISSION MAPPING
# ============================================================================

ALL_PERMISSIONS: Set[Permission] = set(Permission)

ROLE_PERMISSIONS: Dict[Role, Set[Permission]] = {
    Role.ADMIN: set(ALL_PERMISSIONS),
    Role.MANAGER: ALL_PERMISSIONS - {Permission.EDIT_SETTINGS},
    Role.USER: {
        Permission.EDIT_QUOTATIONS,
        Permission.EDIT_INVOICES,
        Permission.EDIT_CUSTOMERS,
        Permission.EDIT_VENDORS,
        Permission.EDIT_PURCHASE_ORDERS,
    },
    Role.VIEWER: set(),
}

# Entity keys the permission table knows about, in display order
ENTITY_KEYS: List[str] = [
    "quotations",
    "invoices",
    "purchase_orders",
    "receipts",
    "customers",
    "vendors",
    "employees",
    "payslips",
    "vehicles",
    "projects",
    "usage_entries",
    "monthly_invoices",
    "settings",
]


# ============================================================================
# PERMISSION UTILITIES
# ============================================================================


def get_user_permissions(role: Role) -> Set[Permission]:
    """Return every permission granted to a role (empty for unknown roles)."""
    try:
        return set(ROLE_PERMISSIONS.get(Role(role), set()))
    except ValueError:
        logger.warning("invalid_role_name", role=role)
        return set()


def permission_for(action: str, entity_key: str) -> Optional[Permission]:
    """Map ``("edit", "customers")`` to ``Permission.EDIT_CUSTOMERS``."""
    try:
        return Permission(f"{action}_{entity_key}")
    except ValueError:
        return None


def check_user_permission(role: Role, required_permission: Permission) -> bool:
    return required_permission in get_user_permissions(role)


def can_edit(role: Role, entity_key: str) -> bool:
    permission = permission_for("edit", entity_key)
    return permission is not None and check_user_permission(role, permission)


def can_delete(role: Role, entity_key: str) -> bool:
    permission = permission_for("delete", entity_key)
    return permission is not None and check_user_permission(role, permission)


def can_create(role: Role, entity_key: str) -> bool:
    """Creating a record requires the same permission as editing it."""
    return can_edit(role, entity_key)


def entity_capabilities(role: Role) -> Dict[str, Dict[str, bool]]:
    """Per-entity ``canEdit`` / ``canDelete`` / ``canCreate`` flags for a role."""
    return {
        key: {
            "canEdit": can_edit(role, key),
            "canDelete": can_delete(role, key),
            "canCreate": can_create(role, key),
        }
        for key in ENTITY_KEYS
    }


# ============================================================================
# FASTAPI DEPENDENCY
# ============================================================================


class PermissionChecker:
    """
    Dependency enforcing one permission on a route.

    With ``enforce_permissions`` disabled the check only requires a session
    and logs what would have been denied.

    Example:
        @router.post("/customers")
        async def create_customer(
            user: CurrentUser = Depends(PermissionChecker(Permission.EDIT_CUSTOMERS))
        ):
            ...
    """

    def __init__(self, required_permission: Permission):
        self.required_permission = required_permission

    async def __call__(
        self,
        request: Request,
        user: CurrentUser = Depends(get_current_user),
        settings: Settings = Depends(get_settings_dependency)
    ) -> CurrentUser:
        if check_user_permission(user.role, self.required_permission):
            logger.debug(
                "permission_checker_access_granted",
                user_id=user.id,
                permission=self.required_permission.value
            )
            return user

        if not settings.enforce_permissions:
            logger.info(
                "permission_checker_not_enforced",
                user_id=user.id,
                role=user.role.value,
                permission=self.required_permission.value,
                path=request.url.path
            )
            return user

        logger.warning(
            "permission_checker_access_denied",
            user_id=user.id,
            role=user.role.value,
            permission=self.required_permission.value,
            path=request.url.path
        )
        raise PermissionDeniedError(
            "Permission denied",
            details=f"{self.required_permission.value} required"
        )
