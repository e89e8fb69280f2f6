"""
Roster authentication tests.

Verifies:
- default roster seeding with bcrypt hashes
- login writes current_user and a login activity
- logout clears the session, audits, and drops the cache
"""

import pytest

from prodtrack.services.auth_service import (
    AuthService,
    AuthenticationError,
    hash_password,
    verify_password,
)
from prodtrack.services.record_store import CURRENT_USER_KEY, USERS_KEY


@pytest.fixture
def auth(service):
    auth = AuthService(service, bcrypt_rounds=4)
    auth.seed_users()
    return auth


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password("sup123", rounds=4)
        assert hashed != "sup123"
        assert verify_password("sup123", hashed)
        assert not verify_password("wrong", hashed)

    @pytest.mark.parametrize("stored", [None, "", "plain-text"])
    def test_malformed_hash_never_matches(self, stored):
        assert verify_password("sup123", stored) is False


class TestRoster:

    def test_seed_is_idempotent(self, auth):
        assert auth.seed_users() == 0
        assert [u["username"] for u in auth.list_users()] == ["boss", "accountant", "mahape", "taloja"]

    def test_list_hides_hashes(self, auth):
        assert all("passwordHash" not in u for u in auth.list_users())
        assert all(u["passwordHash"].startswith("$2") for u in auth.store.read_list(USERS_KEY))

    def test_supervisors_carry_factory(self, auth):
        roster = {u["username"]: u for u in auth.list_users()}
        assert roster["mahape"]["role"] == "factory supervisor"
        assert roster["mahape"]["factory"] == "Mahape"
        assert roster["boss"]["factory"] is None


class TestSessions:

    def test_authenticate(self, auth):
        actor = auth.authenticate("Mahape", "sup123")
        assert actor.name == "Amit Patel"
        assert actor.factory == "Mahape"
        assert auth.authenticate("mahape", "nope") is None
        assert auth.authenticate("ghost", "sup123") is None

    def test_login_sets_current_user_and_audits(self, auth, service):
        actor = auth.login("boss", "boss123")

        assert auth.current_user() == actor
        assert service.store.read(CURRENT_USER_KEY)["username"] == "boss"
        record = service.activity.read_all()[0]
        assert record["action"] == "login"
        assert record["entityType"] == "user session"
        assert record["entityName"] == "Boss (owner)"

    def test_failed_login(self, auth, service):
        with pytest.raises(AuthenticationError):
            auth.login("boss", "guess")
        assert auth.current_user() is None
        assert service.activity.read_all() == []

    def test_logout(self, auth, service):
        auth.login("accountant", "acc123")
        service.get_clients()

        actor = auth.logout()

        assert actor.username == "accountant"
        assert auth.current_user() is None
        assert service.cache.keys() == []
        assert service.activity.read_all()[0]["action"] == "logout"

    def test_logout_without_session(self, auth):
        assert auth.logout() is None
