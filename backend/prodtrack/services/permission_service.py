# Overview: Service-layer operations for permission; role capability and factory scope checks.

"""
Permission Checking for the Three Role Lenses

WHY: Owners and accountants manage every record; factory supervisors record
production for their own site and only read everything else. Every write in
DataService goes through require_permission() and, for factory-partitioned
data, require_factory_scope().

DESIGN PRINCIPLES:
- Fail closed: unknown roles have no permissions
- Log denials only: grants are not logged
- Roles are denormalized onto the actor at login time; no lookups here
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    ROLE_SUPERVISOR,
    normalize_role,
)
from ..validation import ScopeError


logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when an actor lacks a required permission."""
    pass


@dataclass(frozen=True)
class Actor:
    """The user performing an operation, as denormalized at login."""
    id: Any
    name: str
    role: str | None
    factory: str | None = None
    username: str | None = None

    @property
    def is_supervisor(self) -> bool:
        return self.role == ROLE_SUPERVISOR

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "role": self.role,
            "factory": self.factory,
        }


def as_actor(user) -> Actor:
    """Accept an Actor, a user record dict, or any object with id/name/role."""
    if isinstance(user, Actor):
        return user
    if user is None:
        raise PermissionDeniedError("Authentication required")
    if isinstance(user, dict):
        get = user.get
    else:
        def get(attr, default=None):
            return getattr(user, attr, default)
    return Actor(
        id=get("id"),
        name=get("name") or get("username") or "",
        role=normalize_role(get("role")),
        factory=get("factory") or None,
        username=get("username"),
    )


def get_role_permissions(role: str | None) -> set[str]:
    return set(DEFAULT_ROLE_PERMISSIONS.get(normalize_role(role), ()))


def user_has_permission(actor: Actor, permission_code: str) -> bool:
    """
    Check if actor has a specific permission.

    WHY: Core permission check function. Used by require_permission and by
    read paths that only need a yes/no answer.
    """
    return permission_code in get_role_permissions(actor.role)


def require_permission(actor, permission_code: str) -> Actor:
    """
    Require permission or raise PermissionDeniedError.

    Returns the normalized Actor so callers can keep using it.
    """
    actor = as_actor(actor)
    if not user_has_permission(actor, permission_code):
        logger.warning(
            "Permission denied: user=%s role=%s permission=%s",
            actor.id, actor.role, permission_code,
        )
        raise PermissionDeniedError(f"Missing permission: {permission_code}")
    return actor


def can_access_factory(actor: Actor, factory: str | None) -> bool:
    if not actor.is_supervisor:
        return True
    return factory is not None and factory == actor.factory


def require_factory_scope(actor: Actor, factory: str | None, *, what: str = "data") -> None:
    """Supervisors may only touch their own factory's partition."""
    if not can_access_factory(actor, factory):
        logger.warning(
            "Factory scope denied: user=%s factory=%s target=%s",
            actor.id, actor.factory, factory,
        )
        raise ScopeError(f"You can only manage {what} for the {actor.factory} factory")
