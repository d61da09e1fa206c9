# Overview: Conversion between wire amounts (major units) and stored cents.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .validation import MAX_PRICE_CENTS, ValidationError

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal(MAX_PRICE_CENTS) / 100


def to_cents(value, fallback: int = 0, *, field: str = "amount") -> int:
    """
    Parse a major-unit amount ("12.5", 12.5, 12) into integer cents.

    None, "" and unparseable input return `fallback`. A readable amount
    beyond +/- MAX_AMOUNT raises ValidationError naming `field`.
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return fallback
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return fallback
    if not amount.is_finite():
        return fallback
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT:,}")
    try:
        return int((amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())
    except InvalidOperation as exc:
        raise ValidationError(f"{field} is not a valid amount") from exc


def from_cents(cents: int | None) -> float:
    """Cents to a JSON-friendly major-unit number."""
    if not cents:
        return 0
    whole, remainder = divmod(int(cents), 100)
    if remainder == 0:
        return whole
    return float(Decimal(int(cents)) / 100)
