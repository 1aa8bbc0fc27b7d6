# Overview: Admin notifications (order alerts and read state).

from __future__ import annotations

from ..extensions import db
from ..models import Notification
from ..money import format_inr, to_decimal, to_money
from .concurrency import run_with_retry


LIST_LIMIT_DEFAULT = 50


class NotificationError(Exception):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def create_order_notification(order_number: str, total_amount, source: str) -> Notification:
    """
    Queue an "order" notification in the current transaction.

    Not committed here: it is part of the sale it announces.
    """
    amount = to_decimal(total_amount)
    decimals = 0 if amount == amount.to_integral_value() else 2
    title = "New Online Order!" if source == "online" else "New Walk-in Order"
    notification = Notification(
        type="order",
        title=title,
        message=f"Order {order_number} placed for {format_inr(amount, decimals=decimals)}",
        data={
            "orderNumber": order_number,
            "totalAmount": str(to_money(amount)),
            "source": source,
        },
    )
    db.session.add(notification)
    return notification


def list_notifications(*, unread_only: bool = False, limit: int = LIST_LIMIT_DEFAULT) -> list[Notification]:
    query = db.session.query(Notification)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count() -> int:
    return db.session.query(Notification).filter(Notification.is_read.is_(False)).count()


def mark_read(notification_id: int) -> Notification:
    def _op() -> Notification:
        notification = db.session.get(Notification, notification_id)
        if notification is None:
            raise NotificationError("Notification not found", details={"notification_id": notification_id})
        notification.is_read = True
        db.session.commit()
        return notification

    return run_with_retry(_op)


def mark_all_read() -> int:
    def _op() -> int:
        count = (
            db.session.query(Notification)
            .filter(Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        db.session.commit()
        return count

    return run_with_retry(_op)
