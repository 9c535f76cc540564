from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from fabricwms.services.exceptions import ValidationError

MAX_QUANTITY = Decimal("999999999")
MAX_PRICE_PER_UNIT = Decimal("999999999")
MAX_TOTAL_COST = Decimal("999999999999.99")

CENT = Decimal("0.01")
QTY_STEP = Decimal("0.001")


def round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(field: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(field, f"{field} must be a number", value)
    try:
        dec = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(field, f"{field} must be a number", value)
    if not dec.is_finite():
        raise ValidationError(field, f"{field} must be a finite number", value)
    return dec


def positive_bounded(field: str, value: Any, maximum: Decimal, step: Decimal) -> Decimal:
    """Nombre > 0, <= maximum, arrondi HALF_UP à l'échelle de la colonne (step)."""
    dec = to_decimal(field, value)
    if dec <= 0:
        raise ValidationError(field, f"{field} must be a positive number", value)
    if dec > maximum:
        raise ValidationError(field, f"{field} is too large. Maximum allowed is {maximum:,}", value)
    dec = dec.quantize(step, rounding=ROUND_HALF_UP)
    if dec == 0:
        raise ValidationError(field, f"{field} must be at least {step}", value)
    return dec


def compute_total_cost(quantity: Decimal, price_per_unit: Decimal) -> Decimal:
    total = round2(quantity * price_per_unit)
    if total > MAX_TOTAL_COST:
        raise ValidationError(
            "total_cost",
            "Total cost is too large. Please reduce quantity or price per unit",
            total,
        )
    return total


def quantity_value(field: str, value: Any) -> Decimal:
    return positive_bounded(field, value, MAX_QUANTITY, QTY_STEP)


def price_value(field: str, value: Any) -> Decimal:
    return positive_bounded(field, value, MAX_PRICE_PER_UNIT, CENT)
