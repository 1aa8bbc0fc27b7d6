"""
Rupee amount helpers.

All amounts are decimal.Decimal rupees. Columns are Numeric(12, 2), so values
leaving the service layer are quantized to the paisa.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0")
PAISA = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce int/float/str/Decimal/None into a Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def to_money(value) -> Decimal:
    return to_decimal(value).quantize(PAISA, rounding=ROUND_HALF_UP)


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def money_str(value) -> str | None:
    if value is None:
        return None
    return str(to_money(value))


def _group_indian(digits: str) -> str:
    # 12345678 -> 1,23,45,678
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_inr(amount, *, decimals: int = 2) -> str:
    """Format an amount the way en-IN currency formatting does: ₹1,23,456.00"""
    value = to_decimal(amount)
    sign = "-" if value < 0 else ""
    quant = Decimal(1).scaleb(-decimals) if decimals else Decimal("1")
    value = abs(value).quantize(quant, rounding=ROUND_HALF_UP)
    whole, _, frac = f"{value:f}".partition(".")
    text = _group_indian(whole)
    if decimals:
        text = f"{text}.{frac}"
    return f"{sign}₹{text}"
