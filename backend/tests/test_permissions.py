"""
Role permission and factory scope tests.
"""

import pytest

from prodtrack.permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    ROLE_ACCOUNTANT,
    ROLE_OWNER,
    ROLE_SUPERVISOR,
    get_all_permission_codes,
    normalize_role,
    validate_permission_code,
)
from prodtrack.services.permission_service import (
    Actor,
    PermissionDeniedError,
    as_actor,
    can_access_factory,
    require_factory_scope,
    require_permission,
    user_has_permission,
)
from prodtrack.validation import ScopeError


class TestRoleTable:

    def test_every_granted_code_is_defined(self):
        for role, codes in DEFAULT_ROLE_PERMISSIONS.items():
            for code in codes:
                assert validate_permission_code(code), f"{role} grants unknown {code}"

    def test_owner_has_everything(self):
        assert set(DEFAULT_ROLE_PERMISSIONS[ROLE_OWNER]) == set(get_all_permission_codes())

    def test_only_owner_clears_activity(self):
        assert "CLEAR_ACTIVITY" not in DEFAULT_ROLE_PERMISSIONS[ROLE_ACCOUNTANT]
        assert "CLEAR_ACTIVITY" not in DEFAULT_ROLE_PERMISSIONS[ROLE_SUPERVISOR]

    @pytest.mark.parametrize("legacy,current", [
        ("SUPER_ADMIN", ROLE_OWNER),
        ("boss", ROLE_OWNER),
        ("ADMIN", ROLE_ACCOUNTANT),
        ("OPERATOR", ROLE_SUPERVISOR),
        ("owner", ROLE_OWNER),
        (None, None),
    ])
    def test_legacy_roles(self, legacy, current):
        assert normalize_role(legacy) == current


class TestChecks:

    def test_require_permission_returns_actor(self, owner):
        assert require_permission(owner, "MANAGE_PROJECTS") is owner

    def test_denial_is_logged(self, mahape_supervisor, caplog):
        with pytest.raises(PermissionDeniedError):
            require_permission(mahape_supervisor, "MANAGE_INVOICES")
        assert "Permission denied" in caplog.text

    def test_unknown_role_has_nothing(self):
        guest = Actor(id=9, name="Guest", role="guest")
        assert not user_has_permission(guest, "VIEW_PROJECTS")

    def test_anonymous_is_denied(self):
        with pytest.raises(PermissionDeniedError):
            require_permission(None, "VIEW_PROJECTS")

    def test_as_actor_from_dict(self):
        actor = as_actor({"id": 3, "username": "mahape", "role": "OPERATOR", "factory": "Mahape"})
        assert actor.is_supervisor
        assert actor.name == "mahape"

    def test_factory_scope(self, owner, mahape_supervisor):
        assert can_access_factory(owner, "Taloja")
        assert can_access_factory(mahape_supervisor, "Mahape")
        assert not can_access_factory(mahape_supervisor, "Taloja")
        assert not can_access_factory(mahape_supervisor, None)
        with pytest.raises(ScopeError, match="Mahape"):
            require_factory_scope(mahape_supervisor, "Taloja", what="production entries")
