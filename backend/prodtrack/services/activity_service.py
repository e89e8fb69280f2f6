# Overview: Activity audit log; bounded, newest-first, role-filtered record of every mutation.

"""
Activity Audit Log

WHY: Every mutation must be attributable, even after the user or the record
it touched is gone. Records carry denormalized display fields (user name,
role and factory at the time of the action) instead of live references.

RULES:
- Newest first; the stored list is truncated to `capacity` on every write.
  Older records are dropped, this is a bounded ring, not a full history.
- Best effort: append() never raises. A failure is logged and the caller's
  business operation carries on.
- Corrupt storage reads as an empty log.
"""

from __future__ import annotations

import logging
import secrets

from ..permissions import ROLE_ACCOUNTANT, ROLE_OWNER, ROLE_SUPERVISOR, normalize_role
from .permission_service import as_actor
from .record_store import ACTIVITY_LOG_KEY
from prodtrack.time_utils import epoch_millis, to_utc_z, utcnow


logger = logging.getLogger(__name__)


DEFAULT_CAPACITY = 100

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
ACTION_LOGIN = "login"
ACTION_LOGOUT = "logout"

# Past-tense forms written by earlier releases
ACTION_ALIASES = {
    "created": ACTION_CREATE,
    "updated": ACTION_UPDATE,
    "deleted": ACTION_DELETE,
    "logged in": ACTION_LOGIN,
    "logged out": ACTION_LOGOUT,
}

# Entity types a supervisor may see from colleagues of the same factory
SHARED_ENTITY_TYPES = {"project", "client"}


def normalize_action(action) -> str:
    action = str(action or "").strip()
    return ACTION_ALIASES.get(action.lower(), action)


def new_activity_id() -> str:
    return f"{epoch_millis()}-{secrets.token_hex(4)}"


def is_visible(record: dict, viewer) -> bool:
    """
    Role-based visibility of one activity record.

    - owner: everything
    - accountant: everything except supervisor-authored records, unless the
      record is about a project or client
    - supervisor: own records, owner records, and same-factory project/client
      records
    - anyone else: nothing
    """
    role = normalize_role(viewer.role)
    record_role = normalize_role(record.get("userRole"))
    shared_entity = record.get("entityType") in SHARED_ENTITY_TYPES

    if role == ROLE_OWNER:
        return True
    if role == ROLE_ACCOUNTANT:
        return record_role != ROLE_SUPERVISOR or shared_entity
    if role == ROLE_SUPERVISOR:
        return (
            record.get("userId") == viewer.id
            or record_role == ROLE_OWNER
            or (record.get("userFactory") == viewer.factory and shared_entity)
        )
    return False


class ActivityLog:

    def __init__(self, store, *, origin: str, capacity: int = DEFAULT_CAPACITY, clock=utcnow):
        self.store = store
        self.origin = origin
        self.capacity = capacity
        self._clock = clock

    def build_record(self, user, action, entity_type, entity_name, details=None) -> dict:
        actor = as_actor(user)
        return {
            "id": new_activity_id(),
            "timestamp": to_utc_z(self._clock()),
            "userId": actor.id,
            "userName": actor.name,
            "userRole": actor.role,
            "userFactory": actor.factory,
            "action": normalize_action(action),
            "entityType": entity_type,
            "entityName": entity_name,
            "details": dict(details or {}),
        }

    def append(self, user, action, entity_type, entity_name, details=None) -> dict | None:
        """Prepend one record and persist; returns the record, or None if logging failed."""
        try:
            record = self.build_record(user, action, entity_type, entity_name, details)

            def _prepend(records: list) -> list:
                return [record, *records][: self.capacity]

            self.store.update(ACTIVITY_LOG_KEY, _prepend, origin=self.origin)
            return record
        except Exception:
            logger.exception("Failed to record %s activity for %s %r", action, entity_type, entity_name)
            return None

    def read_all(self) -> list[dict]:
        return [r for r in self.store.read_list(ACTIVITY_LOG_KEY) if isinstance(r, dict)]

    def read_filtered(self, current_user) -> list[dict]:
        if current_user is None:
            return []
        viewer = as_actor(current_user)
        return [r for r in self.read_all() if is_visible(r, viewer)]

    def clear(self) -> None:
        self.store.delete(ACTIVITY_LOG_KEY, origin=self.origin)
