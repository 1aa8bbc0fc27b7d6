from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .money import to_money


# Upper bounds shared by the import parser and JSON inputs
MAX_AMOUNT = Decimal("10000000")
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


def parse_int(value: Any, field: str, *, minimum: int | None = None, allow_none: bool = False) -> int | None:
    """
    Strict integer coercion for JSON / form input.

    Rejects floats, booleans, decimal points and scientific notation, so
    "12.5" or 1e3 never silently become a quantity.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def parse_money(value: Any, field: str, *, allow_none: bool = False) -> Decimal | None:
    """Parse a rupee amount (number or numeric string) into a 2dp Decimal >= 0."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = to_money(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    return amount


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
