from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, ConflictError  # noqa: F401  (re-exported for routes)


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

MONEY_FIELDS_NON_NEGATIVE = {"price_cents", "price_adjustment_cents"}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Allowlist for flat, model-backed payloads:
    - writable_fields: what clients may set
    - required_on_create: fields required when partial=False
    - choices: allowed values for enum-like string columns
    """
    writable_fields: set[str]
    required_on_create: set[str] = frozenset()  # type: ignore[assignment]
    choices: dict[str, tuple[str, ...]] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers (ids, cents, quantities): no floats, no scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if "e" in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if "." in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validate and normalize a flat JSON payload against the model's column
    metadata (nullable, type, String length) and the policy allowlist.

    partial=False: create semantics (required_on_create enforced)
    partial=True: patch semantics (only provided keys validated)

    Returns a patch dict containing writable fields only.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}
    choices = policy.choices or {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in choices and val not in choices[k]:
            raise ValidationError(f"{k} must be one of: {', '.join(choices[k])}")

        patch[k] = val

    return patch


def enforce_money_rules(patch: dict, *, positive: set[str] = frozenset()) -> None:
    """Range checks for *_cents fields that metadata alone cannot express."""
    for key, value in patch.items():
        if not key.endswith("_cents") or value is None:
            continue
        if key in positive and value <= 0:
            raise ValidationError(f"{key} must be > 0")
        if key in MONEY_FIELDS_NON_NEGATIVE or key in positive:
            if value < 0:
                raise ValidationError(f"{key} must be >= 0")
        if abs(value) > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})")


def enforce_non_negative(patch: dict, *fields: str) -> None:
    for key in fields:
        value = patch.get(key)
        if value is not None and value < 0:
            raise ValidationError(f"{key} must be >= 0")


def require_positive_int(value: Any, field: str) -> int:
    """Strict positive integer check for scalar service arguments."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value <= 0:
        raise ValidationError(f"{field} must be > 0")
    return value


def require_non_negative_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    return value


def parse_bool_arg(value: str | None, field: str) -> bool | None:
    """Query-string boolean: true/false/1/0; None when absent."""
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{field} must be true or false")
