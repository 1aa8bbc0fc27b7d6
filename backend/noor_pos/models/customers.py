from __future__ import annotations

from ..extensions import db
from ..money import money_str
from noor_pos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Walk-in or online customer.

    total_orders / total_spent are denormalized rollups. They are only changed
    through atomic increments by the sale and order-deletion workflows.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("total_orders >= 0", name="ck_customers_total_orders_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True, index=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(100), nullable=True)
    pincode = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)

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
            "email": self.email,
            "phone": self.phone,
            "city": self.city,
            "state": self.state,
            "total_orders": self.total_orders,
            "total_spent": money_str(self.total_spent),
            "last_purchase_date": to_utc_z(self.last_purchase_date),
            "created_at": to_utc_z(self.created_at),
        }


class Salesman(db.Model):
    __tablename__ = "salesmen"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    # Percentage, e.g. 2.50
    commission_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    total_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

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
            "phone": self.phone,
            "commission_rate": money_str(self.commission_rate),
            "total_sales": money_str(self.total_sales),
            "total_orders": self.total_orders,
            "is_active": self.is_active,
        }
