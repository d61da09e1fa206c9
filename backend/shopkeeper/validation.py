from __future__ import annotations

from typing import Any


# Largest amount accepted on any money field: 9,999,999.99
MAX_PRICE_CENTS = 999_999_999

# Largest quantity accepted on one line item or stock field
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""


def normalize_string(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_code(value: Any) -> str:
    """Product codes and SKUs are compared trimmed and uppercased."""
    return normalize_string(value).upper()


def parse_integer(value: Any, fallback: int = 0) -> int:
    """
    Lenient integer coercion for form-style JSON.

    - None / "" -> fallback
    - bools are rejected (fallback), they are not quantities
    - "12", 12, 12.0 -> 12; "12.7" and 12.7 truncate toward zero
    - anything unparseable -> fallback
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return fallback
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return fallback
        try:
            return int(stripped)
        except ValueError:
            pass
        try:
            return int(float(stripped))
        except (ValueError, OverflowError):
            return fallback
    return fallback


def check_quantity(quantity: int, field: str = "quantity") -> int:
    """Reject quantities (or deltas) whose size is beyond MAX_QUANTITY."""
    if abs(quantity) > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY:,}")
    return quantity
