# Overview: Permission catalogue package.
# Re-exports the static definitions used by the seeders and policy lookups.

from .categories import PermissionModule, WILDCARD_MODULE
from .definitions import PERMISSION_DEFINITIONS
from .dependencies import DEFAULT_PERMISSION_DEPENDENCIES
from .roles import DEFAULT_ROLES, DEFAULT_ROLE_PERMISSIONS, SUPER_ADMIN_SLUG
from .helpers import (
    get_all_permission_names,
    get_permissions_by_module,
    get_permission_definition,
)

__all__ = [
    "PermissionModule",
    "WILDCARD_MODULE",
    "PERMISSION_DEFINITIONS",
    "DEFAULT_PERMISSION_DEPENDENCIES",
    "DEFAULT_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "SUPER_ADMIN_SLUG",
    "get_all_permission_names",
    "get_permissions_by_module",
    "get_permission_definition",
]
