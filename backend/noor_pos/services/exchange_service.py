"""
Order exchange: return some lines of a completed order and replace them.

Flow per session:
    SELECT_ORDER -> SELECT_RETURNS -> SELECT_REPLACEMENTS -> COMMITTED
An order with a single line skips SELECT_RETURNS (that line is returned).
Closing the session before commit is ABANDONED; nothing is written until
commit_exchange, which applies everything in one transaction.

Balance sign: difference = new_total - old_total
    > 0  customer pays the difference
    < 0  customer is refunded
    = 0  even exchange
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from ..extensions import db
from ..models import Invoice, Order, OrderItem, Product
from ..money import ZERO, format_inr, to_decimal, to_money
from noor_pos.time_utils import utcnow
from .concurrency import run_with_retry
from .inventory_service import InsufficientStockError, InventoryError, apply_stock_delta

logger = logging.getLogger(__name__)

INVALIDATED_QUERIES = ["orders", "products", "invoices"]


class ExchangeError(Exception):
    """Raised for exchange operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ExchangeState(str, enum.Enum):
    SELECT_ORDER = "select_order"
    SELECT_RETURNS = "select_returns"
    SELECT_REPLACEMENTS = "select_replacements"
    COMMITTED = "committed"
    ABANDONED = "abandoned"


def _amount_text(amount: Decimal) -> str:
    amount = abs(to_decimal(amount))
    decimals = 0 if amount == amount.to_integral_value() else 2
    return format_inr(amount, decimals=decimals)


@dataclass(frozen=True)
class ExchangeSummary:
    old_total: Decimal
    new_total: Decimal

    @property
    def difference(self) -> Decimal:
        return self.new_total - self.old_total

    @property
    def balance_message(self) -> str:
        diff = self.difference
        if diff > 0:
            return f"Customer pays {_amount_text(diff)}"
        if diff < 0:
            return f"Customer gets {_amount_text(diff)} back"
        return "Even exchange"

    def to_dict(self) -> dict:
        return {
            "old_total": str(to_money(self.old_total)),
            "new_total": str(to_money(self.new_total)),
            "difference": str(to_money(self.difference)),
            "balance_message": self.balance_message,
        }


@dataclass
class StagedReplacement:
    product_id: int
    name: str
    sku: str | None
    unit_price: Decimal
    quantity: int = 1

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "unit_price": str(to_money(self.unit_price)),
            "quantity": self.quantity,
            "line_total": str(to_money(self.line_total)),
        }


def summarize(returned_items: list[OrderItem] | list[dict], replacements: list[StagedReplacement]) -> ExchangeSummary:
    """old_total from the returned lines' stored totals, new_total from current selling prices."""
    old_total = ZERO
    for item in returned_items:
        value = item["total_price"] if isinstance(item, dict) else item.total_price
        old_total += to_decimal(value)
    new_total = sum((r.line_total for r in replacements), ZERO)
    return ExchangeSummary(old_total=old_total, new_total=new_total)


@dataclass
class ExchangeSession:
    """In-memory exchange dialog state. Holds snapshots only; writes happen in commit()."""
    state: ExchangeState = ExchangeState.SELECT_ORDER
    order_id: int | None = None
    order_number: str | None = None
    items: list[dict] = field(default_factory=list)
    returned_ids: set[int] = field(default_factory=set)
    replacements: list[StagedReplacement] = field(default_factory=list)

    def _require(self, *states: ExchangeState) -> None:
        if self.state not in states:
            raise ExchangeError(
                f"Not allowed while {self.state.value}",
                details={"state": self.state.value},
            )

    def select_order(self, order_id: int) -> None:
        self._require(ExchangeState.SELECT_ORDER)
        order = db.session.get(Order, order_id)
        if order is None:
            raise ExchangeError("Order not found", details={"order_id": order_id})
        items = [item.to_dict() for item in order.items]
        if not items:
            raise ExchangeError("Order has no items to exchange", details={"order_id": order_id})

        self.order_id = order.id
        self.order_number = order.order_number
        self.items = items
        if len(items) == 1:
            self.returned_ids = {items[0]["id"]}
            self.state = ExchangeState.SELECT_REPLACEMENTS
        else:
            self.returned_ids = set()
            self.state = ExchangeState.SELECT_RETURNS

    def toggle_return(self, item_id: int) -> None:
        self._require(ExchangeState.SELECT_RETURNS)
        if item_id not in {i["id"] for i in self.items}:
            raise ExchangeError("Item is not on this order", details={"item_id": item_id})
        if item_id in self.returned_ids:
            self.returned_ids.discard(item_id)
        else:
            self.returned_ids.add(item_id)

    def select_all_returns(self) -> None:
        self._require(ExchangeState.SELECT_RETURNS)
        all_ids = {i["id"] for i in self.items}
        # Select-all toggles off when everything is already selected
        self.returned_ids = set() if self.returned_ids == all_ids else all_ids

    def confirm_returns(self) -> None:
        self._require(ExchangeState.SELECT_RETURNS)
        if not self.returned_ids:
            raise ExchangeError("Select at least one item to return")
        self.state = ExchangeState.SELECT_REPLACEMENTS

    def _staged(self, product_id: int) -> StagedReplacement:
        for r in self.replacements:
            if r.product_id == product_id:
                return r
        raise ExchangeError("Product is not staged", details={"product_id": product_id})

    def add_replacement(self, product: Product) -> StagedReplacement:
        self._require(ExchangeState.SELECT_REPLACEMENTS)
        for r in self.replacements:
            if r.product_id == product.id:
                r.quantity += 1
                return r
        staged = StagedReplacement(
            product_id=product.id,
            name=product.name,
            sku=product.sku,
            unit_price=to_decimal(product.selling_price),
        )
        self.replacements.append(staged)
        return staged

    def increment(self, product_id: int) -> None:
        self._require(ExchangeState.SELECT_REPLACEMENTS)
        self._staged(product_id).quantity += 1

    def decrement(self, product_id: int) -> None:
        self._require(ExchangeState.SELECT_REPLACEMENTS)
        staged = self._staged(product_id)
        staged.quantity = max(1, staged.quantity - 1)

    def remove(self, product_id: int) -> None:
        self._require(ExchangeState.SELECT_REPLACEMENTS)
        self.replacements.remove(self._staged(product_id))

    def summary(self) -> ExchangeSummary:
        returned = [i for i in self.items if i["id"] in self.returned_ids]
        return summarize(returned, self.replacements)

    def commit(self, operator_id: str | None = None) -> "ExchangeResult":
        self._require(ExchangeState.SELECT_REPLACEMENTS)
        result = commit_exchange(
            self.order_id,
            returned_item_ids=sorted(self.returned_ids),
            replacements=[{"product_id": r.product_id, "quantity": r.quantity} for r in self.replacements],
            operator_id=operator_id,
        )
        self.state = ExchangeState.COMMITTED
        return result

    def abandon(self) -> None:
        if self.state != ExchangeState.COMMITTED:
            self.state = ExchangeState.ABANDONED


@dataclass
class ExchangeResult:
    order: Order
    summary: ExchangeSummary
    returned: list[dict]
    added: list[dict]

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(include_items=True),
            "summary": self.summary.to_dict(),
            "returned": self.returned,
            "added": self.added,
            "invalidated_queries": list(INVALIDATED_QUERIES),
        }


def _audit_note(returned: list[OrderItem], staged: list[StagedReplacement], summary: ExchangeSummary) -> str:
    returned_text = ", ".join(f"{i.product_name} x{i.quantity}" for i in returned)
    added_text = ", ".join(f"{r.name} x{r.quantity}" for r in staged)
    diff = summary.difference
    sign = "+" if diff > 0 else "-" if diff < 0 else ""
    return (
        f"[Exchange {utcnow():%Y-%m-%d %H:%M}] Returned: {returned_text} ({_amount_text(summary.old_total)}). "
        f"Added: {added_text} ({_amount_text(summary.new_total)}). "
        f"Difference: {sign}{_amount_text(diff)}"
    )


def _parse_replacements(replacements: list[dict]) -> list[tuple[int, int]]:
    merged: dict[int, int] = {}
    for raw in replacements or []:
        if not isinstance(raw, dict):
            raise ExchangeError("Each replacement must be an object")
        product_id = raw.get("product_id")
        quantity = raw.get("quantity", 1)
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise ExchangeError("product_id must be an integer", details={"product_id": product_id})
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ExchangeError("Quantity must be at least 1", details={"product_id": product_id})
        merged[product_id] = merged.get(product_id, 0) + quantity
    return list(merged.items())


def preview_exchange(order_id: int, *, returned_item_ids: list[int], replacements: list[dict]) -> dict:
    """Drive an ExchangeSession to the confirmation step and report the balance. Nothing is written."""
    session = ExchangeSession()
    session.select_order(order_id)
    if session.state == ExchangeState.SELECT_RETURNS:
        for item_id in dict.fromkeys(returned_item_ids or []):
            session.toggle_return(item_id)
        session.confirm_returns()

    for product_id, quantity in _parse_replacements(replacements):
        product = db.session.get(Product, product_id)
        if product is None or not product.is_active:
            raise ExchangeError("Product not found", details={"product_id": product_id})
        session.add_replacement(product).quantity = quantity

    return {
        "order_id": session.order_id,
        "order_number": session.order_number,
        "returned_item_ids": sorted(session.returned_ids),
        "replacements": [r.to_dict() for r in session.replacements],
        "summary": session.summary().to_dict(),
    }


def commit_exchange(
    order_id: int,
    *,
    returned_item_ids: list[int],
    replacements: list[dict],
    operator_id: str | None = None,
) -> ExchangeResult:
    """
    Apply an exchange in one transaction.

    Returned lines put their quantity back in stock (exchange_return) and are
    deleted; replacements are debited (exchange_issue) and inserted as new
    lines. Order and invoice subtotal/total move by the difference, floored
    at 0, and an audit note is appended to the order notes.
    """
    wanted = _parse_replacements(replacements)
    if not returned_item_ids:
        raise ExchangeError("Select at least one item to return")
    if not wanted:
        raise ExchangeError("Add at least one replacement product")

    def _op() -> ExchangeResult:
        order = db.session.get(Order, order_id)
        if order is None:
            raise ExchangeError("Order not found", details={"order_id": order_id})

        items_by_id = {item.id: item for item in order.items}
        unknown = [i for i in returned_item_ids if i not in items_by_id]
        if unknown:
            raise ExchangeError("Items are not on this order", details={"item_ids": unknown})
        returned = [items_by_id[i] for i in dict.fromkeys(returned_item_ids)]

        staged: list[StagedReplacement] = []
        for product_id, quantity in wanted:
            product = db.session.get(Product, product_id)
            if product is None or not product.is_active:
                raise ExchangeError("Product not found", details={"product_id": product_id})
            staged.append(StagedReplacement(
                product_id=product.id,
                name=product.name,
                sku=product.sku,
                unit_price=to_decimal(product.selling_price),
                quantity=quantity,
            ))

        summary = summarize(returned, staged)
        returned_snapshot = [i.to_dict() for i in returned]

        for item in returned:
            if item.product_id is None:
                continue
            try:
                apply_stock_delta(
                    item.product_id,
                    item.quantity,
                    change_type="exchange_return",
                    reference_id=order.id,
                    notes=f"Exchange return - Order {order.order_number}",
                    created_by=operator_id,
                )
            except InventoryError:
                # Product row deleted since the sale; nothing to restore
                logger.warning("Exchange on %s: product %s no longer exists", order.order_number, item.product_id)

        for r in staged:
            try:
                apply_stock_delta(
                    r.product_id,
                    -r.quantity,
                    change_type="exchange_issue",
                    reference_id=order.id,
                    notes=f"Exchange issue - Order {order.order_number}",
                    created_by=operator_id,
                )
            except InsufficientStockError as exc:
                raise ExchangeError(f"Insufficient stock for {r.name}", details=exc.details) from exc

        for item in returned:
            db.session.delete(item)

        for r in staged:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=r.product_id,
                product_name=r.name,
                product_sku=r.sku,
                quantity=r.quantity,
                unit_price=to_money(r.unit_price),
                total_price=to_money(r.line_total),
            ))

        diff = summary.difference
        order.subtotal = to_money(max(ZERO, to_decimal(order.subtotal) + diff))
        order.total_amount = to_money(max(ZERO, to_decimal(order.total_amount) + diff))
        note = _audit_note(returned, staged, summary)
        order.notes = f"{order.notes}\n{note}" if order.notes else note

        for invoice in db.session.query(Invoice).filter_by(order_id=order.id).all():
            invoice.subtotal = order.subtotal
            invoice.total_amount = order.total_amount

        db.session.commit()
        db.session.refresh(order)
        return ExchangeResult(
            order=order,
            summary=summary,
            returned=returned_snapshot,
            added=[r.to_dict() for r in staged],
        )

    result = run_with_retry(_op)
    logger.info(
        "Exchange on order %s committed: %s",
        result.order.order_number, result.summary.balance_message,
    )
    return result
