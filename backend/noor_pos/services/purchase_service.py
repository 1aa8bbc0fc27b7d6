# Overview: Supplier purchase bills (no stock movement).

from __future__ import annotations

import logging
import time
from datetime import date

from sqlalchemy import update

from ..extensions import db
from ..models import Purchase, PurchaseItem, Supplier
from ..money import ZERO, to_money
from ..validation import ValidationError, parse_int, parse_money
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

LIST_LIMIT_DEFAULT = 100


class PurchaseError(Exception):
    """Raised for purchase recording errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def generate_purchase_number(now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"PUR-{now_ms}"


def _unused_purchase_number() -> str:
    # Bills entered within the same millisecond take the next free value
    now_ms = int(time.time() * 1000)
    while db.session.query(Purchase.id).filter_by(purchase_number=generate_purchase_number(now_ms)).first():
        now_ms += 1
    return generate_purchase_number(now_ms)


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise PurchaseError("Add at least one item")

    parsed = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise PurchaseError("Each item must be an object", details={"index": index})
        name = (raw.get("item_name") or "").strip()
        if not name:
            raise PurchaseError("Item name is required", details={"index": index})
        try:
            quantity = parse_int(raw.get("quantity"), "quantity", minimum=1)
            unit_price = parse_money(raw.get("unit_price"), "unit_price")
        except ValidationError as exc:
            raise PurchaseError(str(exc), details={"index": index})
        parsed.append({
            "sno": index + 1,
            "item_name": name[:300],
            "hsn_code": (raw.get("hsn_code") or "").strip() or None,
            "quantity": quantity,
            "unit_price": unit_price,
            "total_price": to_money(unit_price * quantity),
        })
    return parsed


def record_purchase(
    supplier_id: int,
    items: list[dict],
    *,
    purchase_date: date | None = None,
    notes: str | None = None,
    bill_image_url: str | None = None,
    created_by: str | None = None,
) -> Purchase:
    """
    Record a supplier bill and add its total to the supplier's running total.

    Line totals are unit_price * quantity; the purchase total is their sum.
    Stock is not touched: bills are bookkeeping only.
    """
    lines = _parse_items(items)
    total = sum((line["total_price"] for line in lines), ZERO)

    def _op() -> Purchase:
        supplier = db.session.get(Supplier, supplier_id)
        if supplier is None:
            raise PurchaseError("Supplier not found", details={"supplier_id": supplier_id})

        purchase = Purchase(
            purchase_number=_unused_purchase_number(),
            supplier_id=supplier.id,
            purchase_date=purchase_date or date.today(),
            total_amount=total,
            bill_image_url=bill_image_url,
            notes=notes,
            created_by=created_by,
        )
        db.session.add(purchase)
        db.session.flush()

        for line in lines:
            db.session.add(PurchaseItem(purchase_id=purchase.id, **line))

        db.session.execute(
            update(Supplier)
            .where(Supplier.id == supplier.id)
            .values(total_purchases=Supplier.total_purchases + total)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return purchase

    purchase = run_with_retry(_op)
    logger.info("Purchase %s recorded for supplier %s: %s", purchase.purchase_number, supplier_id, total)
    return purchase


def create_supplier(name: str, **fields) -> Supplier:
    name = (name or "").strip()
    if not name:
        raise PurchaseError("Supplier name is required")

    allowed = {"contact_person", "email", "phone", "address", "city", "state", "pincode", "gst_number", "notes"}
    unknown = set(fields) - allowed
    if unknown:
        raise PurchaseError("Unknown supplier fields", details={"fields": sorted(unknown)})

    def _op() -> Supplier:
        supplier = Supplier(name=name, **{k: v for k, v in fields.items() if v not in (None, "")})
        db.session.add(supplier)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def list_suppliers(*, active_only: bool = True) -> list[Supplier]:
    query = db.session.query(Supplier)
    if active_only:
        query = query.filter(Supplier.is_active.is_(True))
    return query.order_by(Supplier.name.asc()).all()


def list_purchases(*, supplier_id: int | None = None, limit: int = LIST_LIMIT_DEFAULT) -> list[Purchase]:
    query = db.session.query(Purchase)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    return query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).limit(limit).all()
