"""
Reconciliation engine tests.

Verifies:
- produced is the order-independent sum of matching entries
- completion beats any manual status; manual status beats auto status
- legacy records (no statusOverride key) keep their stored status as override
- garbage input never raises
"""

import itertools

import pytest

from prodtrack.services.reconciliation import (
    STATUS_COMPLETED,
    STATUS_ONGOING,
    STATUS_PENDING,
    Reconciliation,
    apply_reconciliation,
    coerce_quantity,
    produced_by_project,
    reconcile,
    reconcile_all,
    status_override,
)


# =============================================================================
# END-TO-END SCENARIOS
# =============================================================================


class TestScenarios:

    def test_overproduction_completes_pending_project(self):
        project = {"id": 1, "totalQuantity": 100, "status": "pending"}
        entries = [{"projectId": 1, "quantity": 40}, {"projectId": 1, "quantity": 70}]

        assert reconcile(project, entries) == Reconciliation(produced=110, status=STATUS_COMPLETED)

    def test_partial_production_is_ongoing(self):
        project = {"id": 1, "totalQuantity": 100}
        entries = [{"projectId": 1, "quantity": 30}]

        assert reconcile(project, entries).to_dict() == {"produced": 30, "status": STATUS_ONGOING}


# =============================================================================
# PROPERTIES
# =============================================================================


class TestProperties:

    ENTRIES = [
        {"projectId": 1, "quantity": 10},
        {"projectId": "1", "quantity": "25"},
        {"projectId": 2, "quantity": 99},
        {"projectId": 1, "quantity": 5},
    ]

    def test_idempotent(self):
        project = {"id": 1, "totalQuantity": 100, "statusOverride": None}
        first = reconcile(project, self.ENTRIES)
        second = reconcile(project, self.ENTRIES)
        assert first == second
        assert project == {"id": 1, "totalQuantity": 100, "statusOverride": None}

    def test_commutative(self):
        project = {"id": 1, "totalQuantity": 100}
        results = {reconcile(project, list(p)).produced for p in itertools.permutations(self.ENTRIES)}
        assert results == {40}

    @pytest.mark.parametrize("override", [None, STATUS_PENDING, STATUS_ONGOING])
    def test_completion_cannot_be_overridden(self, override):
        project = {"id": 7, "totalQuantity": 20, "statusOverride": override}
        entries = [{"projectId": 7, "quantity": 20}]
        assert reconcile(project, entries).status == STATUS_COMPLETED

    def test_manual_status_survives_without_entries(self):
        project = {"id": 3, "totalQuantity": 50, "statusOverride": STATUS_ONGOING}
        assert reconcile(project, []).to_dict() == {"produced": 0, "status": STATUS_ONGOING}

    def test_legacy_stored_status_acts_as_override(self):
        project = {"id": 3, "totalQuantity": 50, "status": "ongoing"}
        assert reconcile(project, []).status == STATUS_ONGOING

    def test_explicit_null_override_ignores_stale_status(self):
        # Stored status is only a snapshot once statusOverride exists
        project = {"id": 3, "totalQuantity": 50, "status": "ongoing", "statusOverride": None}
        assert reconcile(project, []).status == STATUS_PENDING

    def test_zero_total_never_completes(self):
        assert reconcile({"id": 4, "totalQuantity": 0}, []).status == STATUS_PENDING
        entries = [{"projectId": 4, "quantity": 3}]
        assert reconcile({"id": 4, "totalQuantity": 0}, entries).status == STATUS_ONGOING


# =============================================================================
# ROBUSTNESS
# =============================================================================


class TestRobustness:

    @pytest.mark.parametrize("raw,expected", [
        (12, 12),
        ("12", 12),
        ("12 boxes", 12),
        (12.9, 12),
        (None, 0),
        ("abc", 0),
        (float("nan"), 0),
        (True, 0),
        ({"n": 1}, 0),
    ])
    def test_coerce_quantity(self, raw, expected):
        assert coerce_quantity(raw) == expected

    def test_garbage_entries_are_ignored(self):
        entries = [None, "x", {"quantity": 5}, {"projectId": [1], "quantity": 5}, {"projectId": 1, "quantity": "n/a"}]
        assert reconcile({"id": 1, "totalQuantity": 10}, entries).to_dict() == {"produced": 0, "status": STATUS_PENDING}

    def test_unknown_override_falls_back_to_auto(self):
        project = {"id": 1, "totalQuantity": 10, "statusOverride": "paused"}
        assert status_override(project) is None
        assert reconcile(project, [{"projectId": 1, "quantity": 2}]).status == STATUS_ONGOING


class TestBulk:

    def test_produced_by_project(self):
        entries = [{"projectId": 1, "quantity": 2}, {"projectId": "1", "quantity": 3}, {"projectId": 2, "quantity": 4}]
        assert produced_by_project(entries) == {1: 5, 2: 4}

    def test_reconcile_all_matches_single(self):
        projects = [
            {"id": 1, "totalQuantity": 5},
            {"id": 2, "totalQuantity": 100, "statusOverride": "ongoing"},
            {"id": 3, "totalQuantity": 10},
        ]
        entries = [{"projectId": 1, "quantity": 5}, {"projectId": 3, "quantity": 1}]
        bulk = reconcile_all(projects, entries)
        for project, result in zip(projects, bulk):
            single = reconcile(project, entries)
            assert (result["produced"], result["status"]) == (single.produced, single.status)
        assert [p["status"] for p in bulk] == [STATUS_COMPLETED, STATUS_ONGOING, STATUS_ONGOING]

    def test_apply_reconciliation_keeps_legacy_override(self):
        legacy = {"id": 9, "totalQuantity": 10, "status": "ongoing"}
        merged = apply_reconciliation(legacy, reconcile(legacy, []))
        assert merged["statusOverride"] == STATUS_ONGOING
        assert merged["produced"] == 0
        assert "produced" not in legacy
