# Overview: Injectable access policy consulted by services before mutating anything.

"""
The engine asks exactly one question: may this principal perform this
action on this resource? RolePolicy answers it from a table, so tests can
build one with any matrix they like instead of patching globals.

Fail closed: unknown roles, resources or actions and inactive principals
are denied.
"""

from __future__ import annotations

from typing import Mapping, Protocol

from flask import current_app

from .definitions import validate_permission
from .roles import DEFAULT_ROLE_PERMISSIONS


class AccessPolicy(Protocol):
    def authorize(self, principal, resource: str, action: str) -> bool:
        ...


class RolePolicy:
    """Table-driven policy: role -> resource -> set of actions."""

    def __init__(self, table: Mapping[str, Mapping[str, set[str]]] | None = None):
        source = DEFAULT_ROLE_PERMISSIONS if table is None else table
        for role, resources in source.items():
            for resource, actions in resources.items():
                for action in actions:
                    if not validate_permission(resource, action):
                        raise ValueError(f"Unknown permission {resource}:{action} for role {role}")
        self._table = {
            role: {resource: frozenset(actions) for resource, actions in resources.items()}
            for role, resources in source.items()
        }

    def authorize(self, principal, resource: str, action: str) -> bool:
        if principal is None or not getattr(principal, "is_active", False):
            return False
        resources = self._table.get(getattr(principal, "role", None), {})
        return action in resources.get(resource, frozenset())

    def actions_for(self, role: str, resource: str) -> set[str]:
        return set(self._table.get(role, {}).get(resource, frozenset()))


def get_access_policy() -> AccessPolicy:
    """Policy bound to the current app by create_app."""
    return current_app.extensions["access_policy"]
