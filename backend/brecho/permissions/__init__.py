# Overview: Permission system package.
# Re-exports the public API so callers import from brecho.permissions.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    CATALOG_PERMISSIONS,
    SALES_PERMISSIONS,
    PEOPLE_PERMISSIONS,
    FINANCE_PERMISSIONS,
    GOAL_PERMISSIONS,
    COMMISSION_PERMISSIONS,
    ASSISTANT_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLES, DEFAULT_ROLE_PERMISSIONS

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "CATALOG_PERMISSIONS",
    "SALES_PERMISSIONS",
    "PEOPLE_PERMISSIONS",
    "FINANCE_PERMISSIONS",
    "GOAL_PERMISSIONS",
    "COMMISSION_PERMISSIONS",
    "ASSISTANT_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
]
