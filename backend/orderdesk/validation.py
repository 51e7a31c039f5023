from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from orderdesk.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Largest amount that fits Numeric(14, 2)
MAX_AMOUNT = Decimal("999999999999.99")

CENT = Decimal("0.01")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate code, blocked delete)."""


class NotFoundError(LookupError):
    """404-level missing target row."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def to_decimal(value: Any, field: str) -> Decimal:
    """Strict decimal parsing: rejects bools, NaN/inf and scientific notation."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, int):
        dec = Decimal(value)
    elif isinstance(value, float):
        dec = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain decimal number")
        try:
            dec = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return dec.quantize(CENT)


def positive_decimal(value: Any, field: str, *, maximum: Decimal = MAX_AMOUNT) -> Decimal:
    dec = to_decimal(value, field)
    if dec <= 0:
        raise ValidationError(f"{field} must be positive")
    if dec > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return dec


def require_choice(value: Any, choices: Iterable[str], field: str) -> str:
    normalized = str(value or "").strip().upper()
    allowed = list(choices)
    if normalized not in allowed:
        raise ValidationError(f"{field} must be one of {allowed}")
    return normalized


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    text = str(value if value is not None else "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Quantities and money travel as strings or numbers, stored as Decimal
    if isinstance(coltype, Numeric):
        return to_decimal(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch
