# Overview: Service-layer operations for auth; roster seeding, login and logout against the shared store.

"""
Roster Authentication

WHY: Every activity record must name who did it. The roster is a flat list
under the `users` store key; login writes the signed-in user to
`current_user` so every instance sharing the store sees the same session.

SECURITY NOTES:
- Passwords hashed with bcrypt (rounds from BCRYPT_ROUNDS, default 12)
- The roster is not an access-control system for the store itself
- Unknown usernames and wrong passwords fail the same way
"""

from __future__ import annotations

import logging

import bcrypt

from ..permissions import ROLE_ACCOUNTANT, ROLE_OWNER, ROLE_SUPERVISOR, normalize_role
from .activity_service import ACTION_LOGIN, ACTION_LOGOUT
from .permission_service import Actor, as_actor
from .record_store import CURRENT_USER_KEY, USERS_KEY


logger = logging.getLogger(__name__)


DEFAULT_BCRYPT_ROUNDS = 12

# (id, username, password, name, role, factory)
DEFAULT_USERS = (
    (1, "boss", "boss123", "Boss", ROLE_OWNER, None),
    (2, "accountant", "acc123", "Accountant", ROLE_ACCOUNTANT, None),
    (3, "mahape", "sup123", "Amit Patel", ROLE_SUPERVISOR, "Mahape"),
    (4, "taloja", "sup123", "Sunita Verma", ROLE_SUPERVISOR, "Taloja"),
)


class AuthenticationError(Exception):
    """Raised when a login attempt fails."""
    pass


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify password against bcrypt hash.

    Malformed or missing hashes never match.
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (TypeError, ValueError):
        return False


def public_user(record: dict) -> dict:
    """Roster record without the password hash."""
    return {k: v for k, v in record.items() if k != "passwordHash"}


class AuthService:

    def __init__(self, service, *, bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS):
        self.service = service
        self.store = service.store
        self.bcrypt_rounds = bcrypt_rounds

    @property
    def origin(self) -> str:
        return self.service.instance_id

    def seed_users(self, users=DEFAULT_USERS, *, replace: bool = False) -> int:
        """
        Write the roster when it is empty (or always, with replace=True).

        Returns the number of users written.
        """
        if self.store.read_list(USERS_KEY) and not replace:
            return 0
        roster = [
            {
                "id": user_id,
                "username": username,
                "name": name,
                "role": role,
                "factory": factory,
                "passwordHash": hash_password(password, self.bcrypt_rounds),
            }
            for user_id, username, password, name, role, factory in users
        ]
        self.store.write(USERS_KEY, roster, origin=self.origin)
        logger.info("Seeded %d roster users", len(roster))
        return len(roster)

    def list_users(self) -> list[dict]:
        return [public_user(u) for u in self.store.read_list(USERS_KEY) if isinstance(u, dict)]

    def authenticate(self, username: str, password: str) -> Actor | None:
        """Actor for valid credentials, None otherwise."""
        wanted = (username or "").strip().lower()
        for record in self.store.read_list(USERS_KEY):
            if not isinstance(record, dict):
                continue
            if str(record.get("username", "")).lower() != wanted:
                continue
            if verify_password(password or "", record.get("passwordHash")):
                return as_actor(public_user(record))
            break
        logger.warning("Failed login for username=%s", username)
        return None

    def login(self, username: str, password: str) -> Actor:
        actor = self.authenticate(username, password)
        if actor is None:
            raise AuthenticationError("Invalid credentials. Please try again.")
        self.store.write(CURRENT_USER_KEY, actor.to_dict(), origin=self.origin)
        self.service.activity.append(
            actor, ACTION_LOGIN, "user session", f"{actor.name} ({actor.role})",
            {"userId": actor.id, "role": actor.role, "factory": actor.factory},
        )
        logger.info("User %s logged in", actor.username)
        return actor

    def current_user(self) -> Actor | None:
        record = self.store.read(CURRENT_USER_KEY)
        if not isinstance(record, dict) or normalize_role(record.get("role")) is None:
            return None
        return as_actor(record)

    def logout(self) -> Actor | None:
        """Sign out the current user and drop every cached read. No-op when nobody is signed in."""
        actor = self.current_user()
        if actor is not None:
            self.service.activity.append(
                actor, ACTION_LOGOUT, "user session", f"{actor.name} ({actor.role})",
                {"userId": actor.id},
            )
            logger.info("User %s logged out", actor.username)
        self.store.delete(CURRENT_USER_KEY, origin=self.origin)
        self.service.reset()
        return actor
