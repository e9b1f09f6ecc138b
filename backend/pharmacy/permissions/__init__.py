# Overview: Permission system package.

from .definitions import PERMISSION_DEFINITIONS, RESOURCES, ACTIONS, validate_permission
from .roles import DEFAULT_ROLE_PERMISSIONS
from .policy import AccessPolicy, RolePolicy, get_access_policy

__all__ = [
    "PERMISSION_DEFINITIONS",
    "RESOURCES",
    "ACTIONS",
    "validate_permission",
    "DEFAULT_ROLE_PERMISSIONS",
    "AccessPolicy",
    "RolePolicy",
    "get_access_policy",
]
