# Overview: Flask API routes for admin notifications; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_operator
from ..services import notification_service
from ..services.notification_service import NotificationError


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
def list_route():
    unread_only = request.args.get("unread", "false").lower() == "true"
    limit = request.args.get("limit", notification_service.LIST_LIMIT_DEFAULT, type=int)
    notifications = notification_service.list_notifications(unread_only=unread_only, limit=max(1, min(limit, 200)))
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": notification_service.unread_count(),
    }), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_operator
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(notification_id)
        return jsonify({"notification": notification.to_dict()}), 200
    except NotificationError as e:
        return jsonify({"error": str(e), "details": e.details}), 404


@notifications_bp.post("/read-all")
@require_operator
def mark_all_read_route():
    count = notification_service.mark_all_read()
    return jsonify({"updated": count}), 200
