# Overview: Sales summaries and CSV exports for the admin reports screens.

from __future__ import annotations

import csv
import io

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Order, OrderItem
from ..money import ZERO, money_str, to_decimal, to_money
from noor_pos.time_utils import days_ago, to_utc_z

PERIODS = (7, 30, 90)
TOP_N = 5

CUSTOMER_CSV_HEADER = ["ID", "Name", "Email", "Phone", "City", "State", "Total Orders", "Total Spent"]
ORDER_CSV_HEADER = ["Order Number", "Date", "Customer", "Status", "Payment Status", "Payment Method", "Total"]
SALES_CSV_HEADER = ["Date", "Revenue", "Orders"]


class ReportError(Exception):
    """Raised when report generation fails."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _check_days(days: int) -> int:
    if not isinstance(days, int) or isinstance(days, bool) or days < 1:
        raise ReportError("days must be a positive integer", details={"days": days})
    return days


def daily_sales(days: int) -> list[dict]:
    """Revenue and order count per calendar day (UTC), oldest first. Days without orders are omitted."""
    since = days_ago(_check_days(days))
    day = func.date(Order.created_at)
    rows = (
        db.session.query(
            day.label("day"),
            func.count(Order.id).label("orders"),
            func.coalesce(func.sum(Order.total_amount), 0).label("revenue"),
        )
        .filter(Order.created_at >= since)
        .group_by(day)
        .order_by(day)
        .all()
    )
    return [
        {"date": str(row.day), "revenue": to_money(row.revenue), "orders": int(row.orders or 0)}
        for row in rows
    ]


def sales_summary(days: int = 30) -> dict:
    """
    Dashboard figures for the last ``days`` days.

    Payment-method totals come from the structured payment columns on the
    order; notes are never parsed.
    """
    since = days_ago(_check_days(days))

    revenue, order_count = (
        db.session.query(
            func.coalesce(func.sum(Order.total_amount), 0),
            func.count(Order.id),
        )
        .filter(Order.created_at >= since)
        .one()
    )
    revenue = to_money(revenue)
    order_count = int(order_count or 0)
    average = to_money(revenue / order_count) if order_count else to_money(ZERO)

    new_customers = db.session.query(func.count(Customer.id)).filter(Customer.created_at >= since).scalar() or 0

    product_revenue = func.sum(OrderItem.total_price)
    top_products = (
        db.session.query(
            OrderItem.product_name,
            func.sum(OrderItem.quantity).label("quantity"),
            product_revenue.label("revenue"),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.created_at >= since)
        .group_by(OrderItem.product_name)
        .order_by(product_revenue.desc())
        .limit(TOP_N)
        .all()
    )

    top_customers = (
        db.session.query(Customer)
        .order_by(Customer.total_spent.desc(), Customer.id.asc())
        .limit(TOP_N)
        .all()
    )

    methods = (
        db.session.query(
            Order.payment_method,
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
            func.coalesce(func.sum(Order.cash_amount), 0),
            func.coalesce(func.sum(Order.card_amount), 0),
            func.coalesce(func.sum(Order.credit_amount), 0),
        )
        .filter(Order.created_at >= since)
        .group_by(Order.payment_method)
        .all()
    )

    return {
        "days": days,
        "since": to_utc_z(since),
        "total_revenue": money_str(revenue),
        "total_orders": order_count,
        "average_order_value": money_str(average),
        "new_customers": int(new_customers),
        "daily": [
            {"date": row["date"], "revenue": money_str(row["revenue"]), "orders": row["orders"]}
            for row in daily_sales(days)
        ],
        "top_products": [
            {
                "name": row.product_name,
                "quantity": int(row.quantity or 0),
                "revenue": money_str(to_decimal(row.revenue)),
            }
            for row in top_products
        ],
        "top_customers": [
            {
                "id": c.id,
                "name": c.name,
                "total_orders": c.total_orders,
                "total_spent": money_str(c.total_spent),
            }
            for c in top_customers
        ],
        "payment_methods": [
            {
                "method": method or "unknown",
                "orders": int(count or 0),
                "total": money_str(total),
                "cash": money_str(cash),
                "card": money_str(card),
                "credit": money_str(credit),
            }
            for method, count, total, cash, card, credit in methods
        ],
    }


def _write_csv(header: list[str], rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def export_customers_csv() -> str:
    customers = db.session.query(Customer).order_by(Customer.created_at.desc(), Customer.id.desc()).all()
    return _write_csv(
        CUSTOMER_CSV_HEADER,
        (
            [
                c.id,
                c.name or "",
                c.email or "",
                c.phone or "",
                c.city or "",
                c.state or "",
                c.total_orders,
                to_money(c.total_spent),
            ]
            for c in customers
        ),
    )


def export_orders_csv(days: int | None = None) -> str:
    query = db.session.query(Order)
    if days is not None:
        query = query.filter(Order.created_at >= days_ago(_check_days(days)))
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()
    return _write_csv(
        ORDER_CSV_HEADER,
        (
            [
                o.order_number,
                o.created_at.date().isoformat() if o.created_at else "",
                o.customer.name if o.customer else "Walk-in",
                o.status,
                o.payment_status,
                o.payment_method or "",
                to_money(o.total_amount),
            ]
            for o in orders
        ),
    )


def export_sales_csv(days: int = 30) -> str:
    return _write_csv(
        SALES_CSV_HEADER,
        ([row["date"], row["revenue"], row["orders"]] for row in daily_sales(days)),
    )
