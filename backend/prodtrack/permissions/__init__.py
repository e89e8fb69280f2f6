# Overview: Permission system package.
# Re-exports all public APIs for convenient imports.

from .definitions import (
    PermissionCategory,
    PERMISSION_DEFINITIONS,
    CLIENT_PERMISSIONS,
    PROJECT_PERMISSIONS,
    PRODUCTION_PERMISSIONS,
    INVOICE_PERMISSIONS,
    ACTIVITY_PERMISSIONS,
)
from .roles import (
    ROLE_OWNER,
    ROLE_ACCOUNTANT,
    ROLE_SUPERVISOR,
    ALL_ROLES,
    ROLE_ALIASES,
    DEFAULT_ROLE_PERMISSIONS,
    normalize_role,
)


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return code in get_all_permission_codes()


__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "CLIENT_PERMISSIONS",
    "PROJECT_PERMISSIONS",
    "PRODUCTION_PERMISSIONS",
    "INVOICE_PERMISSIONS",
    "ACTIVITY_PERMISSIONS",
    "ROLE_OWNER",
    "ROLE_ACCOUNTANT",
    "ROLE_SUPERVISOR",
    "ALL_ROLES",
    "ROLE_ALIASES",
    "DEFAULT_ROLE_PERMISSIONS",
    "normalize_role",
    "get_all_permission_codes",
    "validate_permission_code",
]
