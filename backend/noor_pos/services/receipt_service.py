# Overview: Printable receipt rendering for POS sales.

from __future__ import annotations

from datetime import date, datetime

from jinja2 import Environment, PackageLoader, select_autoescape

from ..money import format_inr, round_half_up, to_decimal


DEFAULT_STORE_NAME = "NOOR - A HAND CRAFTED HERITAGE"

_env = Environment(
    loader=PackageLoader("noor_pos", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
_env.filters["inr"] = format_inr


def _display_date(value) -> str:
    # en-IN short date: 14/3/2026
    if isinstance(value, datetime):
        value = value.date()
    elif isinstance(value, str) and value:
        value = date.fromisoformat(value[:10])
    elif not isinstance(value, date):
        return ""
    return f"{value.day}/{value.month}/{value.year}"


def _item_label(item: dict) -> str:
    label = item.get("name") or ""
    if item.get("size"):
        label += f" ({item['size']})"
    if item.get("color"):
        label += f" - {item['color']}"
    return label


def receipt_lines(data: dict) -> list[dict]:
    """Per-line figures as printed: gross, whole-rupee discount, net."""
    lines = []
    for item in data.get("items") or []:
        unit_price = to_decimal(item.get("unit_price"))
        quantity = int(item.get("quantity") or 0)
        percent = int(item.get("discount_percent") or 0)
        gross = unit_price * quantity
        discount = round_half_up(gross * percent / 100)
        lines.append({
            "label": _item_label(item),
            "sku": item.get("sku") or "-",
            "quantity": quantity,
            "unit_price": unit_price,
            "discount_percent": percent,
            "net": gross - discount,
        })
    return lines


def render_receipt(data: dict, *, store_name: str = DEFAULT_STORE_NAME) -> str:
    """
    Render receipt data (as returned by billing_service.commit_sale) into a
    self-contained HTML document.

    Pure: no database or request access. Printing it is the client's job.
    """
    template = _env.get_template("receipt.html")
    discount_amount = to_decimal(data.get("discount_amount"))
    return template.render(
        store_name=store_name,
        invoice_number=data.get("invoice_number") or "",
        date=_display_date(data.get("date")),
        customer=(data.get("customer") or {}).get("name"),
        salesman=(data.get("salesman") or {}).get("name"),
        payment_method=(data.get("payment_method") or "").upper(),
        lines=receipt_lines(data),
        subtotal=to_decimal(data.get("subtotal")),
        discount_amount=discount_amount,
        show_discount=discount_amount > 0,
        total_amount=to_decimal(data.get("total_amount")),
    )
