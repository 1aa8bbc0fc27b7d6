# Overview: Order maintenance (status, payment status, amount edits, deletion).

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, or_, update

from ..extensions import db
from ..models import Customer, Invoice, Order, Salesman, StockHistory
from ..models.orders import ORDER_STATUSES, PAYMENT_STATUSES
from ..money import ZERO, to_decimal, to_money
from .concurrency import run_with_retry
from .inventory_service import InventoryError, apply_stock_delta

logger = logging.getLogger(__name__)

LIST_LIMIT_DEFAULT = 100


class OrderError(Exception):
    """Raised for order maintenance errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderNotFoundError(OrderError):
    pass


def _get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError("Order not found", details={"order_id": order_id})
    return order


def get_order(order_id: int) -> Order:
    return _get_order(order_id)


def list_orders(
    *,
    status: str | None = None,
    source: str | None = None,
    search: str | None = None,
    limit: int = LIST_LIMIT_DEFAULT,
) -> list[Order]:
    query = db.session.query(Order).outerjoin(Customer, Customer.id == Order.customer_id)
    if status:
        query = query.filter(Order.status == status)
    if source:
        query = query.filter(Order.order_source == source)
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            db.func.lower(Order.order_number).like(like),
            db.func.lower(Customer.name).like(like),
            db.func.lower(Customer.email).like(like),
        ))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def update_order_status(order_id: int, status: str) -> Order:
    if status not in ORDER_STATUSES:
        raise OrderError(
            f"status must be one of: {', '.join(ORDER_STATUSES)}",
            details={"status": status},
        )

    def _op() -> Order:
        order = _get_order(order_id)
        order.status = status
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_payment_status(order_id: int, payment_status: str) -> Order:
    """Set the order's payment status and mirror it onto its invoices."""
    if payment_status not in PAYMENT_STATUSES:
        raise OrderError(
            f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
            details={"payment_status": payment_status},
        )

    def _op() -> Order:
        order = _get_order(order_id)
        order.payment_status = payment_status
        db.session.query(Invoice).filter(Invoice.order_id == order.id).update(
            {Invoice.payment_status: payment_status}, synchronize_session=False
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def edit_order_amount(order_id: int, new_total: Decimal) -> Order:
    """
    Operator override of an order's total.

    subtotal is re-derived so that
    total = subtotal - discount + tax + shipping still holds, and both are
    mirrored onto the linked invoices.
    """
    new_total = to_money(new_total)
    if new_total < 0:
        raise OrderError("Amount cannot be negative", details={"total_amount": str(new_total)})

    def _op() -> Order:
        order = _get_order(order_id)
        subtotal = (
            new_total
            + to_decimal(order.discount_amount)
            - to_decimal(order.tax_amount)
            - to_decimal(order.shipping_amount)
        )
        if subtotal < 0:
            raise OrderError(
                "Amount is lower than the order's charges allow",
                details={"total_amount": str(new_total)},
            )
        order.total_amount = new_total
        order.subtotal = to_money(subtotal)
        for invoice in db.session.query(Invoice).filter_by(order_id=order.id).all():
            invoice.total_amount = order.total_amount
            invoice.subtotal = order.subtotal
        db.session.commit()
        return order

    return run_with_retry(_op)


def _floored_decrement(column, amount):
    return case((column > amount, column - amount), else_=0)


def delete_order(order_id: int, operator_id: str | None = None) -> dict:
    """
    Delete an order and undo its effects, in one transaction.

    - stock for every line that still references a product is put back
      (history tag order_deleted)
    - customer / salesman rollups are decremented atomically, never below 0
    - items, invoices and the order's own stock history rows are removed
    """
    def _op() -> dict:
        order = _get_order(order_id)
        order_number = order.order_number
        total = to_decimal(order.total_amount)
        items = list(order.items)

        # Drop the order's own audit rows first so the restores below survive
        history_deleted = (
            db.session.query(StockHistory)
            .filter(StockHistory.reference_id == order.id)
            .delete(synchronize_session=False)
        )

        restored = 0
        for item in items:
            if item.product_id is None:
                continue
            try:
                apply_stock_delta(
                    item.product_id,
                    item.quantity,
                    change_type="order_deleted",
                    notes=f"Order {order_number} deleted",
                    created_by=operator_id,
                )
                restored += item.quantity
            except InventoryError:
                logger.warning("Deleting %s: product %s no longer exists", order_number, item.product_id)

        if order.customer_id is not None:
            db.session.execute(
                update(Customer)
                .where(Customer.id == order.customer_id)
                .values(
                    total_orders=_floored_decrement(Customer.total_orders, 1),
                    total_spent=_floored_decrement(Customer.total_spent, total),
                )
                .execution_options(synchronize_session=False)
            )
        if order.salesman_id is not None:
            db.session.execute(
                update(Salesman)
                .where(Salesman.id == order.salesman_id)
                .values(
                    total_orders=_floored_decrement(Salesman.total_orders, 1),
                    total_sales=_floored_decrement(Salesman.total_sales, total),
                )
                .execution_options(synchronize_session=False)
            )

        for item in items:
            db.session.delete(item)
        invoices = db.session.query(Invoice).filter(Invoice.order_id == order.id).all()
        for invoice in invoices:
            db.session.delete(invoice)
        invoices_deleted = len(invoices)
        db.session.delete(order)
        db.session.commit()

        return {
            "order_id": order_id,
            "order_number": order_number,
            "units_restored": restored,
            "invoices_deleted": invoices_deleted,
            "history_deleted": history_deleted,
            "invalidated_queries": ["orders", "products", "invoices", "customers", "salesmen"],
        }

    result = run_with_retry(_op)
    logger.info("Order %s deleted; %s units restored", result["order_number"], result["units_restored"])
    return result


def order_totals_consistent(order: Order) -> bool:
    """total = subtotal - discount + tax + shipping."""
    expected = (
        to_decimal(order.subtotal)
        - to_decimal(order.discount_amount)
        + to_decimal(order.tax_amount)
        + to_decimal(order.shipping_amount)
    )
    return to_money(expected) == to_money(order.total_amount) or (
        expected < 0 and to_money(order.total_amount) == ZERO
    )
