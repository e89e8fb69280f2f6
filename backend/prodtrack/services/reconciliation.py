# Overview: Reconciliation engine; derives a project's produced quantity and status from production entries.

"""
Project Reconciliation

================================================================================
PURPOSE: Fold a project record and the full set of production entries into
{produced, status}. Pure: no I/O, no mutation, never raises.
================================================================================

STATUS RULES (in order):
    1. totalQuantity > 0 and produced >= totalQuantity  -> completed (always)
    2. a manual override is set                          -> the override
    3. produced > 0                                      -> ongoing
    4. otherwise                                         -> pending

Manual overrides live in project["statusOverride"]. Project records written
before that field existed carry no "statusOverride" key at all; for those the
stored "status" is the override, which is how such records behaved when they
were written.

A project with totalQuantity == 0 never completes automatically.

Entries arrive from several factories and instances in no particular order.
The sum is commutative and the status only depends on the sum and the
project, so re-running from scratch is always safe.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from ..validation import coerce_id


STATUS_PENDING = "pending"
STATUS_ONGOING = "ongoing"
STATUS_COMPLETED = "completed"
VALID_STATUSES = {STATUS_PENDING, STATUS_ONGOING, STATUS_COMPLETED}

OVERRIDE_FIELD = "statusOverride"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class Reconciliation:
    produced: int
    status: str

    def to_dict(self) -> dict:
        return {"produced": self.produced, "status": self.status}


def coerce_quantity(value) -> int:
    """
    Lenient integer read of a stored quantity.

    Historical entries hold ints, digit strings, floats or garbage. Leading
    digits are used ("12 boxes" -> 12); anything else counts as 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return 0
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else 0
    return 0


def normalize_status(value) -> str | None:
    if value is None:
        return None
    status = str(value).strip().lower()
    return status if status in VALID_STATUSES else None


def status_override(project: dict) -> str | None:
    """The manual status of a project, or None when status is automatic."""
    if OVERRIDE_FIELD in project:
        return normalize_status(project.get(OVERRIDE_FIELD))
    return normalize_status(project.get("status"))


def auto_status(produced: int) -> str:
    return STATUS_ONGOING if produced > 0 else STATUS_PENDING


def is_complete(produced: int, total_quantity: int) -> bool:
    return total_quantity > 0 and produced >= total_quantity


def _id_key(value):
    """Normalized, hashable project id; None when unusable."""
    value = coerce_id(value)
    if isinstance(value, (list, dict, set)):
        return None
    return value


def produced_quantity(project_id, entries: Iterable[dict]) -> int:
    target = _id_key(project_id)
    if target is None:
        return 0
    total = 0
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        if _id_key(entry.get("projectId")) == target:
            total += coerce_quantity(entry.get("quantity"))
    return total


def derive_status(project: dict, produced: int) -> str:
    if is_complete(produced, coerce_quantity(project.get("totalQuantity"))):
        return STATUS_COMPLETED
    return status_override(project) or auto_status(produced)


def reconcile(project: dict, entries: Iterable[dict]) -> Reconciliation:
    produced = produced_quantity(project.get("id"), entries)
    return Reconciliation(produced=produced, status=derive_status(project, produced))


def produced_by_project(entries: Iterable[dict]) -> dict:
    """One pass over entries -> {project id: produced}."""
    totals: dict = defaultdict(int)
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        project_id = _id_key(entry.get("projectId"))
        if project_id is None:
            continue
        totals[project_id] += coerce_quantity(entry.get("quantity"))
    return dict(totals)


def apply_reconciliation(project: dict, result: Reconciliation) -> dict:
    """Copy of project with the derived fields replaced."""
    merged = dict(project)
    merged["produced"] = result.produced
    merged["status"] = result.status
    merged.setdefault(OVERRIDE_FIELD, status_override(project))
    return merged


def reconcile_all(projects: Iterable[dict], entries: Iterable[dict]) -> list[dict]:
    """Reconciled copies of every project, in input order."""
    totals = produced_by_project(entries)
    reconciled = []
    for project in projects:
        if not isinstance(project, dict):
            continue
        produced = totals.get(_id_key(project.get("id")), 0)
        result = Reconciliation(produced=produced, status=derive_status(project, produced))
        reconciled.append(apply_reconciliation(project, result))
    return reconciled
