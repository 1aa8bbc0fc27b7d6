# Overview: Flask API routes for order maintenance and exchanges; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_operator
from ..services import exchange_service, order_service
from ..services.exchange_service import ExchangeError
from ..services.order_service import OrderError, OrderNotFoundError
from ..validation import ValidationError, parse_money


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_error(e: OrderError):
    status = 404 if isinstance(e, OrderNotFoundError) else 400
    return jsonify({"error": str(e), "details": e.details}), status


@orders_bp.get("")
def list_orders_route():
    limit = request.args.get("limit", order_service.LIST_LIMIT_DEFAULT, type=int)
    orders = order_service.list_orders(
        status=request.args.get("status") or None,
        source=request.args.get("source") or None,
        search=request.args.get("search") or None,
        limit=max(1, min(limit, 500)),
    )
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except OrderError as e:
        return _order_error(e)
    data = order.to_dict(include_items=True)
    data["invoices"] = [i.to_dict() for i in order.invoices]
    return jsonify({"order": data}), 200


@orders_bp.patch("/<int:order_id>/status")
@require_operator
def update_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.update_order_status(order_id, data.get("status"))
        return jsonify({"order": order.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/payment-status")
@require_operator
def update_payment_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.update_payment_status(order_id, data.get("payment_status"))
        return jsonify({"order": order.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/amount")
@require_operator
def edit_amount_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        total = parse_money(data.get("total_amount"), "total_amount")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        order = order_service.edit_order_amount(order_id, total)
        return jsonify({"order": order.to_dict()}), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to edit order amount")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_operator
def delete_order_route(order_id: int):
    try:
        result = order_service.delete_order(order_id, operator_id=g.operator_id)
        return jsonify(result), 200
    except OrderError as e:
        return _order_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500


def _exchange_payload():
    data = request.get_json(silent=True) or {}
    returned = data.get("returned_item_ids") or []
    if not isinstance(returned, list) or not all(isinstance(i, int) and not isinstance(i, bool) for i in returned):
        raise ExchangeError("returned_item_ids must be a list of integers")
    return returned, data.get("replacements") or []


@orders_bp.post("/<int:order_id>/exchange/preview")
def preview_exchange_route(order_id: int):
    try:
        returned, replacements = _exchange_payload()
        preview = exchange_service.preview_exchange(
            order_id,
            returned_item_ids=returned,
            replacements=replacements,
        )
        return jsonify(preview), 200
    except ExchangeError as e:
        return jsonify({"error": str(e), "details": e.details}), 400


@orders_bp.post("/<int:order_id>/exchange")
@require_operator
def commit_exchange_route(order_id: int):
    try:
        returned, replacements = _exchange_payload()
        result = exchange_service.commit_exchange(
            order_id,
            returned_item_ids=returned,
            replacements=replacements,
            operator_id=g.operator_id,
        )
        return jsonify(result.to_dict()), 200
    except ExchangeError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to commit exchange")
        return jsonify({"error": "Internal server error"}), 500
