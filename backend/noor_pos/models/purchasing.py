from __future__ import annotations

from ..extensions import db
from ..money import money_str
from noor_pos.time_utils import to_utc_z


class Supplier(db.Model):
    """Supplier master. total_purchases grows with each recorded purchase and is never reversed."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    contact_person = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    pincode = db.Column(db.String(16), nullable=True)
    gst_number = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    total_purchases = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "gst_number": self.gst_number,
            "is_active": self.is_active,
            "total_purchases": money_str(self.total_purchases),
        }


class Purchase(db.Model):
    __tablename__ = "purchases"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # PUR-<epoch millis>
    purchase_number = db.Column(db.String(32), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_date = db.Column(db.Date, nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    bill_image_url = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    items = db.relationship("PurchaseItem", backref="purchase", lazy=True, order_by="PurchaseItem.sno")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "purchase_number": self.purchase_number,
            "supplier_id": self.supplier_id,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "total_amount": money_str(self.total_amount),
            "bill_image_url": self.bill_image_url,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    sno = db.Column(db.Integer, nullable=False)
    item_name = db.Column(db.String(300), nullable=False)
    hsn_code = db.Column(db.String(16), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sno": self.sno,
            "item_name": self.item_name,
            "hsn_code": self.hsn_code,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
        }
