from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from prodtrack.time_utils import parse_iso_day


# Largest quantity a single record may carry; keeps sums in a sane range
MAX_QUANTITY = 999_999_999


class ValidationError(ValueError):
    """Rejected operation; the message is safe to show to the user."""


class NotFoundError(ValidationError):
    """Referenced record does not exist."""


class ScopeError(ValidationError):
    """Actor tried to touch data outside their factory."""


class ConflictError(ValueError):
    """Business rule conflict (e.g., duplicate client name)."""


@dataclass(frozen=True)
class Field:
    """
    Declarative description of one JSON field.

    kind: "int", "str", "day", "enum", "list", "id"
    """
    kind: str
    nullable: bool = True
    max_length: int | None = None
    choices: frozenset | None = None
    min_value: int | None = None


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what callers are allowed to set (security boundary)
    - required_on_create: fields required when creating a record
    """
    writable_fields: frozenset
    required_on_create: frozenset = frozenset()


def _coerce_int(name: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    # Whole floats come from JSON clients that do not distinguish number types
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def coerce_id(value: Any) -> Any:
    """Numeric ids arrive as ints or digit strings; normalize both to int."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
        return stripped
    return value


def _coerce_value(name: str, field: Field, value: Any):
    if value is None:
        return None

    if field.kind == "int":
        val = _coerce_int(name, value)
        if field.min_value is not None and val < field.min_value:
            raise ValidationError(f"{name} must be >= {field.min_value}")
        if val > MAX_QUANTITY:
            raise ValidationError(f"{name} cannot exceed {MAX_QUANTITY}")
        return val

    if field.kind == "id":
        val = coerce_id(value)
        if val == "" or isinstance(val, (bool, list, dict)):
            raise ValidationError(f"{name} must be a record id")
        return val

    if field.kind == "day":
        try:
            day = parse_iso_day(value if isinstance(value, str) else str(value))
        except ValueError:
            raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)")
        if day is None:
            raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)")
        return day.isoformat()

    if field.kind == "enum":
        val = str(value).strip()
        if field.choices is not None and val not in field.choices:
            raise ValidationError(f"{name} must be one of: {', '.join(sorted(field.choices))}")
        return val

    if field.kind == "list":
        if not isinstance(value, (list, tuple)):
            raise ValidationError(f"{name} must be a list")
        return list(value)

    # Strings
    return str(value).strip()


def validate_payload(
    *,
    schema: dict[str, Field],
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes an incoming record against:
    - the field schema (type, nullability, length, choices)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid record payload")

    if not partial:
        missing = [f for f in sorted(policy.required_on_create) if payload.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in schema:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        field = schema[k]

        # NULL handling
        if raw is None:
            if not field.nullable or k in policy.required_on_create:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(k, field, raw)

        # Blank string check for required text fields
        if field.kind == "str" and isinstance(val, str) and val == "":
            if not field.nullable or k in policy.required_on_create:
                raise ValidationError(f"{k} cannot be blank")

        if field.max_length and isinstance(val, str) and len(val) > field.max_length:
            raise ValidationError(f"{k} exceeds max length {field.max_length}")

        patch[k] = val

    return patch


def enforce_rules_production_entry(patch: dict) -> None:
    """Rules that the field schema alone does not capture."""
    if "quantity" in patch:
        if patch["quantity"] is None or patch["quantity"] <= 0:
            raise ValidationError("Please enter a valid quantity (must be > 0)")
    if "projectId" in patch and patch["projectId"] in (None, ""):
        raise ValidationError("Please select a project")


def enforce_rules_project(patch: dict) -> None:
    if "totalQuantity" in patch and patch["totalQuantity"] is not None:
        if patch["totalQuantity"] < 0:
            raise ValidationError("totalQuantity must be >= 0")
    start, end = patch.get("startDate"), patch.get("endDate")
    if start and end and end < start:
        raise ValidationError("endDate cannot be before startDate")
