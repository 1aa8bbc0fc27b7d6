from __future__ import annotations

from ..extensions import db
from ..money import money_str
from noor_pos.time_utils import to_utc_z


class Category(db.Model):
    """Product category. Import category detection resolves names against this table."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    slug = db.Column(db.String(160), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
        }


class Product(db.Model):
    """
    Product master data.

    stock_quantity is the authoritative on-hand count. It is only ever changed
    through inventory_service, which appends a StockHistory row for each move.

    SKU: nullable (admin-created products may not carry one) but unique when
    present. The spreadsheet import keys its upsert on it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint(
            "discount_price IS NULL OR discount_price <= price",
            name="ck_products_discount_le_price",
        ),
        db.Index("ix_products_active_stock", "is_active", "stock_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(300), nullable=False)
    slug = db.Column(db.String(400), nullable=False, unique=True)
    sku = db.Column(db.String(50), nullable=True, unique=True)
    design_number = db.Column(db.String(300), nullable=True)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(20), nullable=False, default="Pcs")

    # MRP and optional selling price, rupees
    price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_price = db.Column(db.Numeric(12, 2), nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_alert = db.Column(db.Integer, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    sizes = db.Column(db.JSON, nullable=True)
    colors = db.Column(db.JSON, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    @property
    def selling_price(self):
        """Price a customer pays: discount_price when set, else MRP."""
        return self.discount_price if self.discount_price else self.price

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "sku": self.sku,
            "design_number": self.design_number,
            "unit": self.unit,
            "price": money_str(self.price),
            "discount_price": money_str(self.discount_price),
            "stock_quantity": self.stock_quantity,
            "min_stock_alert": self.min_stock_alert,
            "category_id": self.category_id,
            "sizes": list(self.sizes or []),
            "colors": list(self.colors or []),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockHistory(db.Model):
    """
    Append-only audit trail of stock movements.

    Rows are only removed together with the order they reference
    (order deletion), never edited.
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.CheckConstraint(
            "new_quantity = previous_quantity + change_amount",
            name="ck_stock_history_arithmetic",
        ),
        db.CheckConstraint("new_quantity >= 0", name="ck_stock_history_non_negative"),
        db.Index("ix_stock_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # sale, file_upload, adjustment_in, adjustment_out, stock_set,
    # exchange_return, exchange_issue, order_deleted
    change_type = db.Column(db.String(32), nullable=False, index=True)
    change_amount = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    # Order id for sale/exchange/deletion moves, import id is not known until the end of an import
    reference_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.String(500), nullable=True)
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "change_type": self.change_type,
            "change_amount": self.change_amount,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
