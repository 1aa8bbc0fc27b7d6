"""
POS billing: cart building, totals, and the sale commit.

WHY: the whole sale (order, items, invoice, stock debits, customer and
salesman rollups, notification) is written in one transaction, so a failure
at any step leaves no partial sale behind.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import func, update

from ..extensions import db
from ..models import Customer, Invoice, Order, OrderItem, Product, Salesman
from ..models.orders import PAYMENT_METHODS
from ..money import ZERO, round_half_up, to_decimal, to_money
from noor_pos.time_utils import utcnow
from .concurrency import run_with_retry
from .document_service import INVOICE, DocumentSequenceError, next_document_number
from .inventory_service import InsufficientStockError, apply_stock_delta
from .notification_service import create_order_notification

logger = logging.getLogger(__name__)

DEFAULT_DISCOUNT_PERCENT = 10
ORDER_NUMBER_ATTEMPTS = 5

INVALIDATED_QUERIES = ["products", "orders", "customers", "salesmen", "invoices"]


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class StockLimitError(SaleError):
    title = "Stock Limit"


class ProductNotFoundError(SaleError):
    title = "Product Not Found"


@dataclass
class CartLine:
    """
    One product in the cart. unit_price is captured when the product is
    added (discount price if set, else MRP) and is not refreshed afterwards.
    """
    product_id: int
    name: str
    sku: str | None
    stock_quantity: int
    unit_price: Decimal
    quantity: int = 1
    size: str | None = None
    color: str | None = None
    discount_percent: int = DEFAULT_DISCOUNT_PERCENT

    @property
    def gross(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def discount(self) -> int:
        # Whole rupees, rounded half-up per line
        return round_half_up(self.gross * self.discount_percent / 100)

    @property
    def net(self) -> Decimal:
        return self.gross - self.discount

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "quantity": self.quantity,
            "size": self.size,
            "color": self.color,
            "unit_price": str(to_money(self.unit_price)),
            "discount_percent": self.discount_percent,
            "gross": str(to_money(self.gross)),
            "discount": str(to_money(self.discount)),
            "net": str(to_money(self.net)),
        }


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": str(to_money(self.subtotal)),
            "discount_amount": str(to_money(self.discount_amount)),
            "tax_amount": str(to_money(self.tax_amount)),
            "total_amount": str(to_money(self.total_amount)),
        }


def clamp_discount(value) -> int:
    """Discount percent is edited as a whole number between 0 and 100."""
    if value is None or value == "":
        return 0
    try:
        pct = int(round(float(value)))
    except (TypeError, ValueError):
        raise SaleError("discount_percent must be a number", details={"discount_percent": value})
    return min(100, max(0, pct))


@dataclass
class Cart:
    lines: list[CartLine] = field(default_factory=list)
    default_discount_percent: int = DEFAULT_DISCOUNT_PERCENT

    def add_product(self, product: Product) -> CartLine:
        """
        Add one unit of product. A product already in the cart has its
        quantity bumped instead, up to the stock it was loaded with.
        """
        for line in self.lines:
            if line.product_id == product.id:
                if line.quantity < line.stock_quantity:
                    line.quantity += 1
                    return line
                raise StockLimitError(
                    "Cannot add more than available stock",
                    details={"product_id": product.id, "stock_quantity": line.stock_quantity},
                )

        if (product.stock_quantity or 0) < 1:
            raise StockLimitError(
                "Cannot add more than available stock",
                details={"product_id": product.id, "stock_quantity": product.stock_quantity or 0},
            )

        line = CartLine(
            product_id=product.id,
            name=product.name,
            sku=product.sku,
            stock_quantity=product.stock_quantity or 0,
            unit_price=to_decimal(product.selling_price),
            quantity=1,
            size=(product.sizes or [None])[0],
            color=(product.colors or [None])[0],
            discount_percent=self.default_discount_percent,
        )
        self.lines.append(line)
        return line

    def update_line(
        self,
        index: int,
        *,
        quantity: int | None = None,
        size: str | None = None,
        color: str | None = None,
        discount_percent=None,
    ) -> CartLine:
        if index < 0 or index >= len(self.lines):
            raise SaleError("Cart line not found", details={"index": index})
        line = self.lines[index]
        if quantity is not None:
            if quantity < 1:
                raise SaleError("Quantity must be at least 1", details={"product_id": line.product_id})
            if quantity > line.stock_quantity:
                raise StockLimitError(
                    "Cannot add more than available stock",
                    details={"product_id": line.product_id, "stock_quantity": line.stock_quantity},
                )
            line.quantity = quantity
        if size is not None:
            line.size = size or None
        if color is not None:
            line.color = color or None
        if discount_percent is not None:
            line.discount_percent = clamp_discount(discount_percent)
        return line

    def remove_line(self, index: int) -> None:
        if index < 0 or index >= len(self.lines):
            raise SaleError("Cart line not found", details={"index": index})
        del self.lines[index]

    def totals(self) -> CartTotals:
        subtotal = sum((line.gross for line in self.lines), ZERO)
        discount = sum((Decimal(line.discount) for line in self.lines), ZERO)
        return CartTotals(
            subtotal=subtotal,
            discount_amount=discount,
            tax_amount=ZERO,  # prices are GST inclusive
            total_amount=subtotal - discount,
        )

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "totals": self.totals().to_dict(),
        }


def scan_sku(sku: str) -> Product:
    """Barcode lookup: case-insensitive exact SKU among active, in-stock products."""
    scanned = (sku or "").strip()
    if not scanned:
        raise SaleError("SKU is required")
    product = (
        db.session.query(Product)
        .filter(
            func.lower(Product.sku) == scanned.lower(),
            Product.is_active.is_(True),
            Product.stock_quantity > 0,
        )
        .first()
    )
    if product is None:
        raise ProductNotFoundError(f"No product with SKU: {scanned}", details={"sku": scanned})
    return product


def build_cart(items: list[dict], *, default_discount_percent: int = DEFAULT_DISCOUNT_PERCENT) -> Cart:
    """
    Rebuild a cart from client line items against current product data.

    Each item: {product_id, quantity?, size?, color?, discount_percent?}.
    Lines for the same product are merged, mirroring repeated adds.
    """
    if not isinstance(items, list):
        raise SaleError("items must be a list")

    cart = Cart(default_discount_percent=default_discount_percent)
    for raw in items:
        if not isinstance(raw, dict):
            raise SaleError("Each item must be an object")
        product_id = raw.get("product_id")
        product = db.session.get(Product, product_id) if isinstance(product_id, int) else None
        if product is None or not product.is_active:
            raise ProductNotFoundError("Product not found", details={"product_id": product_id})

        quantity = raw.get("quantity", 1)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise SaleError("Quantity must be at least 1", details={"product_id": product_id})

        existing = next((i for i, ln in enumerate(cart.lines) if ln.product_id == product.id), None)
        if existing is None:
            cart.add_product(product)
            index = len(cart.lines) - 1
            current = 0
        else:
            index = existing
            current = cart.lines[index].quantity

        cart.update_line(
            index,
            quantity=quantity if existing is None else current + quantity,
            size=raw.get("size"),
            color=raw.get("color"),
            discount_percent=raw.get("discount_percent"),
        )
    return cart


@dataclass(frozen=True)
class Payment:
    method: str
    cash_amount: Decimal | None = None
    card_amount: Decimal | None = None
    credit_amount: Decimal | None = None

    @property
    def payment_status(self) -> str:
        # Credit sales stay pending whatever amount was deferred
        return "pending" if self.method == "credit" else "paid"


def resolve_payment(method: str, total: Decimal, *, cash_amount=None, card_amount=None, credit_amount=None) -> Payment:
    """Turn the payment form into structured amounts for the order row."""
    if method not in PAYMENT_METHODS:
        raise SaleError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": method},
        )
    total = to_money(total)

    if method == "cash":
        return Payment(method, cash_amount=total)
    if method == "card_upi":
        return Payment(method, card_amount=total)
    if method == "credit":
        credit = to_money(credit_amount) if credit_amount not in (None, "") else ZERO
        if credit <= 0:
            credit = total
        if credit > total:
            raise SaleError("Credit amount cannot exceed the bill total", details={"credit_amount": str(credit)})
        return Payment(method, credit_amount=credit)

    cash = to_money(cash_amount)
    card = to_money(card_amount)
    if cash < 0 or card < 0 or cash + card != total:
        raise SaleError(
            "Cash and card/UPI amounts must add up to the bill total",
            details={"cash_amount": str(cash), "card_amount": str(card), "total_amount": str(total)},
        )
    return Payment(method, cash_amount=cash, card_amount=card)


def generate_order_number(today: date | None = None) -> str:
    """POS-YYYYMMDD-NNNN with a random 4-digit suffix."""
    today = today or utcnow().date()
    return f"POS-{today:%Y%m%d}-{random.randint(0, 9999):04d}"


def _unused_order_number() -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = generate_order_number()
        taken = db.session.query(Order.id).filter_by(order_number=candidate).first()
        if taken is None:
            return candidate
    raise SaleError("Could not allocate an order number, please retry")


@dataclass
class SaleResult:
    order: Order
    invoice: Invoice
    receipt: dict
    elapsed_ms: int

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(include_items=True),
            "invoice": self.invoice.to_dict(),
            "receipt": self.receipt,
            "elapsed_ms": self.elapsed_ms,
            "invalidated_queries": list(INVALIDATED_QUERIES),
        }


def _receipt_data(
    cart: Cart,
    totals: CartTotals,
    *,
    invoice_number: str,
    order_number: str,
    issued_on: date,
    customer: Customer | None,
    salesman: Salesman | None,
    payment: Payment,
) -> dict:
    return {
        "invoice_number": invoice_number,
        "order_number": order_number,
        "date": issued_on.isoformat(),
        "customer": {"name": customer.name} if customer else None,
        "salesman": {"name": salesman.name} if salesman else None,
        "payment_method": payment.method,
        "cash_amount": str(payment.cash_amount) if payment.cash_amount is not None else None,
        "card_amount": str(payment.card_amount) if payment.card_amount is not None else None,
        "credit_amount": str(payment.credit_amount) if payment.credit_amount is not None else None,
        "items": [line.to_dict() for line in cart.lines],
        **totals.to_dict(),
    }


def commit_sale(
    cart: Cart,
    *,
    payment_method: str,
    customer_id: int | None = None,
    salesman_id: int | None = None,
    cash_amount=None,
    card_amount=None,
    credit_amount=None,
    notes: str | None = None,
    needs_alteration: bool = False,
    alteration_due_date: date | None = None,
    alteration_notes: str | None = None,
    created_by: str | None = None,
) -> SaleResult:
    """
    Generate the bill for a cart.

    Writes, in one transaction: the Order header, its OrderItems, an Invoice
    with a freshly allocated number, a "sale" stock debit (plus history) per
    line, the customer and salesman rollups, and an order notification.
    """
    if not cart.lines:
        raise SaleError("Please add items to the cart")

    started = time.monotonic()
    totals = cart.totals()
    payment = resolve_payment(
        payment_method,
        totals.total_amount,
        cash_amount=cash_amount,
        card_amount=card_amount,
        credit_amount=credit_amount,
    )
    total = to_money(totals.total_amount)
    default_notes = f"In-store purchase - {payment.method}"

    def _op():
        customer = None
        if customer_id is not None:
            customer = db.session.get(Customer, customer_id)
            if customer is None:
                raise SaleError("Customer not found", details={"customer_id": customer_id})

        salesman = None
        if salesman_id is not None:
            salesman = db.session.get(Salesman, salesman_id)
            if salesman is None or not salesman.is_active:
                raise SaleError("Salesman not found or inactive", details={"salesman_id": salesman_id})

        order_number = _unused_order_number()
        order = Order(
            order_number=order_number,
            customer_id=customer_id,
            salesman_id=salesman_id,
            status="processing" if needs_alteration else "delivered",
            payment_status=payment.payment_status,
            payment_method=payment.method,
            cash_amount=payment.cash_amount,
            card_amount=payment.card_amount,
            credit_amount=payment.credit_amount,
            subtotal=to_money(totals.subtotal),
            discount_amount=to_money(totals.discount_amount),
            tax_amount=to_money(totals.tax_amount),
            shipping_amount=ZERO,
            total_amount=total,
            order_source="pos",
            needs_alteration=bool(needs_alteration),
            alteration_due_date=alteration_due_date if needs_alteration else None,
            alteration_status="pending" if needs_alteration else None,
            alteration_notes=alteration_notes if needs_alteration else None,
            notes=notes or default_notes,
            created_by=created_by,
        )
        db.session.add(order)
        db.session.flush()

        for line in cart.lines:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                product_name=line.name,
                product_sku=line.sku,
                quantity=line.quantity,
                unit_price=to_money(line.unit_price),
                total_price=to_money(line.gross),
                discount_percent=line.discount_percent,
                size=line.size,
                color=line.color,
            ))

        try:
            invoice_number = next_document_number(INVOICE)
        except DocumentSequenceError as exc:
            raise SaleError("Could not generate an invoice number, please retry", details=exc.details) from exc

        invoice = Invoice(
            invoice_number=invoice_number,
            order_id=order.id,
            customer_id=customer_id,
            salesman_id=salesman_id,
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            tax_amount=order.tax_amount,
            total_amount=total,
            payment_status=payment.payment_status,
            notes=notes,
            created_by=created_by,
        )
        db.session.add(invoice)

        for line in cart.lines:
            try:
                apply_stock_delta(
                    line.product_id,
                    -line.quantity,
                    change_type="sale",
                    reference_id=order.id,
                    notes=f"In-store sale - Order {order_number}",
                    created_by=created_by,
                )
            except InsufficientStockError as exc:
                raise SaleError(
                    f"Insufficient stock for {line.name}",
                    details=exc.details,
                ) from exc

        now = utcnow()
        if customer is not None:
            db.session.execute(
                update(Customer)
                .where(Customer.id == customer.id)
                .values(
                    total_orders=Customer.total_orders + 1,
                    total_spent=Customer.total_spent + total,
                    last_purchase_date=now,
                )
                .execution_options(synchronize_session=False)
            )
        if salesman is not None:
            db.session.execute(
                update(Salesman)
                .where(Salesman.id == salesman.id)
                .values(
                    total_sales=Salesman.total_sales + total,
                    total_orders=Salesman.total_orders + 1,
                )
                .execution_options(synchronize_session=False)
            )

        create_order_notification(order_number, total, "pos")

        db.session.commit()
        return order, invoice, customer, salesman

    order, invoice, customer, salesman = run_with_retry(_op)

    receipt = _receipt_data(
        cart,
        totals,
        invoice_number=invoice.invoice_number,
        order_number=order.order_number,
        issued_on=utcnow().date(),
        customer=customer,
        salesman=salesman,
        payment=payment,
    )
    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "Sale %s committed: invoice=%s total=%s lines=%s (%sms)",
        order.order_number, invoice.invoice_number, total, len(cart.lines), elapsed_ms,
    )
    return SaleResult(order=order, invoice=invoice, receipt=receipt, elapsed_ms=elapsed_ms)


def create_walk_in_customer(name: str, phone: str | None = None, email: str | None = None) -> Customer:
    """Quick customer creation from the billing screen."""
    name = (name or "").strip()
    if not name:
        raise SaleError("Customer name is required")

    def _op() -> Customer:
        customer = Customer(
            name=name[:200],
            phone=(phone or "").strip() or None,
            email=(email or "").strip() or None,
        )
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def receipt_for_invoice(invoice_id: int) -> dict:
    """Rebuild receipt data from a stored invoice and its order lines (reprint)."""
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise SaleError("Invoice not found", details={"invoice_id": invoice_id})
    order = invoice.order
    if order is None:
        raise SaleError("Invoice has no order", details={"invoice_id": invoice_id})

    created = invoice.created_at or utcnow()
    return {
        "invoice_number": invoice.invoice_number,
        "order_number": order.order_number,
        "date": created.date().isoformat(),
        "customer": {"name": order.customer.name} if order.customer else None,
        "salesman": {"name": order.salesman.name} if order.salesman else None,
        "payment_method": order.payment_method,
        "items": [
            {
                "name": item.product_name,
                "sku": item.product_sku,
                "quantity": item.quantity,
                "size": item.size,
                "color": item.color,
                "unit_price": str(to_money(item.unit_price)),
                "discount_percent": item.discount_percent or 0,
            }
            for item in order.items
        ],
        "subtotal": str(to_money(invoice.subtotal)),
        "discount_amount": str(to_money(invoice.discount_amount)),
        "tax_amount": str(to_money(invoice.tax_amount)),
        "total_amount": str(to_money(invoice.total_amount)),
    }
