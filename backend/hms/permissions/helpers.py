# Overview: Utility functions for permission catalogue lookups.

from .definitions import PERMISSION_DEFINITIONS


def get_all_permission_names():
    """Get list of all permission names."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_permissions_by_module(module):
    return [perm for perm in PERMISSION_DEFINITIONS if perm[2] == module]


def get_permission_definition(name):
    """Get full definition for a permission name."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == name:
            return {
                "name": perm[0],
                "description": perm[1],
                "module": perm[2],
                "action": perm[3],
                "is_critical": perm[4],
            }
    return None
