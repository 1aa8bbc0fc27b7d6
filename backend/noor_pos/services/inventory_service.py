# Overview: Inventory ledger; the only code that changes Product.stock_quantity.

from __future__ import annotations

import logging

from sqlalchemy import update

from ..extensions import db
from ..models import Product, StockHistory
from .concurrency import lock_for_update, run_with_retry

"""
Inventory invariants (authoritative)

- Product.stock_quantity is the on-hand count and is never negative.
- Every change to it appends exactly one StockHistory row in the same
  transaction, with new_quantity = previous_quantity + change_amount.
- Deltas are applied as one conditional UPDATE
  (stock_quantity = stock_quantity + delta WHERE stock_quantity + delta >= 0),
  so concurrent sales cannot lose updates or drive stock below zero.
- Functions here flush but do not commit; the calling workflow owns the
  transaction. adjust_stock is the exception: it is a workflow of its own.
"""

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 10
HISTORY_LIMIT_DEFAULT = 10

OUT_OF_STOCK = "out_of_stock"
LOW_STOCK = "low_stock"
IN_STOCK = "in_stock"


class InventoryError(Exception):
    """Raised for inventory operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStockError(InventoryError):
    """A move would take a product's stock below zero."""


def _record(
    product_id: int,
    *,
    change_type: str,
    previous_quantity: int,
    new_quantity: int,
    reference_id: int | None,
    notes: str | None,
    created_by: str | None,
) -> StockHistory:
    entry = StockHistory(
        product_id=product_id,
        change_type=change_type,
        change_amount=new_quantity - previous_quantity,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        reference_id=reference_id,
        notes=notes[:500] if notes else notes,
        created_by=created_by,
    )
    db.session.add(entry)
    return entry


def _on_hand(product_id: int) -> int | None:
    return db.session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()


def apply_stock_delta(
    product_id: int,
    delta: int,
    *,
    change_type: str,
    reference_id: int | None = None,
    notes: str | None = None,
    created_by: str | None = None,
) -> StockHistory:
    """
    Atomically add delta (signed) to a product's stock and log the move.

    Raises InsufficientStockError when the result would be negative and
    InventoryError when the product does not exist. Nothing is written in
    either case.
    """
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise InventoryError("Stock change must be a non-zero integer", details={"delta": delta})

    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity + delta >= 0)
        .values(stock_quantity=Product.stock_quantity + delta)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if not result.rowcount:
        on_hand = _on_hand(product_id)
        if on_hand is None:
            raise InventoryError("Product not found", details={"product_id": product_id})
        raise InsufficientStockError(
            "Insufficient stock",
            details={"product_id": product_id, "requested": -delta, "on_hand": on_hand},
        )

    # Bring any loaded Product in line with the row just updated
    product = db.session.get(Product, product_id)
    db.session.refresh(product, attribute_names=["stock_quantity"])
    new_quantity = product.stock_quantity

    entry = _record(
        product_id,
        change_type=change_type,
        previous_quantity=new_quantity - delta,
        new_quantity=new_quantity,
        reference_id=reference_id,
        notes=notes,
        created_by=created_by,
    )
    db.session.flush()
    return entry


def set_stock(
    product_id: int,
    new_quantity: int,
    *,
    change_type: str,
    notes: str | None = None,
    created_by: str | None = None,
    reference_id: int | None = None,
    only_if_changed: bool = True,
) -> StockHistory | None:
    """
    Set a product's stock to an absolute count (import sync, "set" adjustments).

    Returns the history row, or None when only_if_changed and the count was
    already new_quantity.
    """
    if new_quantity < 0:
        raise InventoryError("Stock cannot be negative", details={"quantity": new_quantity})

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise InventoryError("Product not found", details={"product_id": product_id})

    previous = product.stock_quantity or 0
    if only_if_changed and previous == new_quantity:
        return None

    product.stock_quantity = new_quantity
    entry = _record(
        product_id,
        change_type=change_type,
        previous_quantity=previous,
        new_quantity=new_quantity,
        reference_id=reference_id,
        notes=notes,
        created_by=created_by,
    )
    db.session.flush()
    return entry


def record_initial_stock(
    product: Product,
    *,
    change_type: str,
    notes: str | None = None,
    created_by: str | None = None,
) -> StockHistory:
    """Log the opening stock of a freshly inserted product (0 -> stock_quantity)."""
    return _record(
        product.id,
        change_type=change_type,
        previous_quantity=0,
        new_quantity=product.stock_quantity or 0,
        reference_id=None,
        notes=notes,
        created_by=created_by,
    )


def adjust_stock(
    product_id: int,
    *,
    mode: str,
    quantity: int,
    direction: str = "add",
    notes: str | None = None,
    created_by: str | None = None,
) -> StockHistory:
    """
    Back-office stock adjustment.

    mode="set": stock becomes quantity (change_type stock_set).
    mode="adjust": quantity is added or removed depending on direction
    (adjustment_in / adjustment_out). Removing more than on hand is rejected.
    """
    if mode not in ("set", "adjust"):
        raise InventoryError("mode must be 'set' or 'adjust'")
    if direction not in ("add", "remove"):
        raise InventoryError("direction must be 'add' or 'remove'")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise InventoryError("Please enter a valid quantity", details={"quantity": quantity})

    if mode == "set":
        default_note = f"Stock set to {quantity}"
    elif direction == "add":
        default_note = f"Stock added {quantity}"
    else:
        default_note = f"Stock removed {quantity}"

    def _op() -> StockHistory:
        if mode == "set":
            entry = set_stock(
                product_id,
                quantity,
                change_type="stock_set",
                notes=notes or default_note,
                created_by=created_by,
                only_if_changed=False,
            )
        else:
            if quantity == 0:
                raise InventoryError("Please enter a valid quantity", details={"quantity": quantity})
            delta = quantity if direction == "add" else -quantity
            try:
                entry = apply_stock_delta(
                    product_id,
                    delta,
                    change_type="adjustment_in" if delta > 0 else "adjustment_out",
                    notes=notes or default_note,
                    created_by=created_by,
                )
            except InsufficientStockError as exc:
                raise InsufficientStockError(
                    "Cannot remove more than available stock",
                    details=exc.details,
                ) from exc
        db.session.commit()
        return entry

    entry = run_with_retry(_op)
    logger.info(
        "Stock %s for product %s: %s -> %s",
        entry.change_type, product_id, entry.previous_quantity, entry.new_quantity,
    )
    return entry


def stock_history(product_id: int, limit: int = HISTORY_LIMIT_DEFAULT) -> list[StockHistory]:
    """Newest-first audit entries for one product."""
    return (
        db.session.query(StockHistory)
        .filter(StockHistory.product_id == product_id)
        .order_by(StockHistory.created_at.desc(), StockHistory.id.desc())
        .limit(limit)
        .all()
    )


def classify_stock(product: Product, default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> str:
    qty = product.stock_quantity or 0
    if qty <= 0:
        return OUT_OF_STOCK
    if qty <= (product.min_stock_alert or default_threshold):
        return LOW_STOCK
    return IN_STOCK


def low_stock_products(default_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> list[Product]:
    """Active products with 0 < stock <= their alert threshold, lowest stock first."""
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_quantity > 0)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )
    return [p for p in products if classify_stock(p, default_threshold) == LOW_STOCK]
