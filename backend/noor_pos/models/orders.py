from __future__ import annotations

from ..extensions import db
from ..money import money_str
from noor_pos.time_utils import to_utc_z


ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
PAYMENT_METHODS = ("cash", "card_upi", "credit", "double")


class Order(db.Model):
    """
    Sale order header (online or in-store POS).

    Totals invariant, checked by every workflow that writes these columns:
        total_amount = subtotal - discount_amount + tax_amount + shipping_amount
    Prices are tax-inclusive, so tax_amount stays 0 for POS sales.

    Payment detail lives in structured columns (payment_method and the
    cash/card/credit amounts); notes are free text for the operator only.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_created", "created_at"),
        db.Index("ix_orders_customer", "customer_id"),
        db.Index("ix_orders_salesman", "salesman_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-scannable number, e.g. POS-20260314-0427
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("salesmen.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    payment_method = db.Column(db.String(16), nullable=True)
    cash_amount = db.Column(db.Numeric(12, 2), nullable=True)
    card_amount = db.Column(db.Numeric(12, 2), nullable=True)
    credit_amount = db.Column(db.Numeric(12, 2), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    order_source = db.Column(db.String(16), nullable=False, default="pos")

    # Tailoring follow-up
    needs_alteration = db.Column(db.Boolean, nullable=False, default=False)
    alteration_due_date = db.Column(db.Date, nullable=True)
    alteration_status = db.Column(db.String(16), nullable=True)
    alteration_notes = db.Column(db.Text, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    salesman = db.relationship("Salesman", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "salesman_id": self.salesman_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "cash_amount": money_str(self.cash_amount),
            "card_amount": money_str(self.card_amount),
            "credit_amount": money_str(self.credit_amount),
            "subtotal": money_str(self.subtotal),
            "discount_amount": money_str(self.discount_amount),
            "tax_amount": money_str(self.tax_amount),
            "shipping_amount": money_str(self.shipping_amount),
            "total_amount": money_str(self.total_amount),
            "order_source": self.order_source,
            "needs_alteration": self.needs_alteration,
            "alteration_due_date": self.alteration_due_date.isoformat() if self.alteration_due_date else None,
            "alteration_status": self.alteration_status,
            "alteration_notes": self.alteration_notes,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Order line. product_name/product_sku are a snapshot so the line survives
    deletion of the product (product_id is then nulled).

    total_price = unit_price * quantity when written; the per-line POS
    discount is kept in discount_percent and rolled into the order's
    discount_amount.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    product_name = db.Column(db.String(300), nullable=False)
    product_sku = db.Column(db.String(50), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percent = db.Column(db.Integer, nullable=True)

    size = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
            "discount_percent": self.discount_percent,
            "size": self.size,
            "color": self.color,
        }


class Invoice(db.Model):
    """
    Invoice issued for an order.

    invoice_number is always allocated server-side from DocumentSequence.
    Totals mirror the order at generation time; workflows that edit order
    totals update the invoice in the same transaction.
    """
    __tablename__ = "invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    order_id = db.Column(
        db.Integer,
        db.ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("salesmen.id"), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("invoices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "salesman_id": self.salesman_id,
            "subtotal": money_str(self.subtotal),
            "discount_amount": money_str(self.discount_amount),
            "tax_amount": money_str(self.tax_amount),
            "total_amount": money_str(self.total_amount),
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic document number sequences (one row per document type).

    WHY: invoice numbers must be unique and are never taken from the client.
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
