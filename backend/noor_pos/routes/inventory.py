# Overview: Flask API routes for inventory; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_operator
from ..extensions import db
from ..models import Product
from ..services import inventory_service
from ..services.inventory_service import InventoryError
from ..validation import ValidationError, parse_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/products/<int:product_id>/adjust")
@require_operator
def adjust_route(product_id: int):
    data = request.get_json(silent=True) or {}
    try:
        quantity = parse_int(data.get("quantity"), "quantity")
    except ValidationError:
        return jsonify({"error": "Please enter a valid quantity"}), 400

    try:
        entry = inventory_service.adjust_stock(
            product_id,
            mode=data.get("mode") or "adjust",
            quantity=quantity,
            direction=data.get("direction") or "add",
            notes=(data.get("notes") or "").strip() or None,
            created_by=g.operator_id,
        )
        product = db.session.get(Product, product_id)
        return jsonify({
            "entry": entry.to_dict(),
            "product": product.to_dict(),
            "invalidated_queries": ["products"],
        }), 200

    except InventoryError as e:
        status = 404 if str(e) == "Product not found" else 400
        return jsonify({"error": str(e), "details": e.details}), status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/products/<int:product_id>/history")
def history_route(product_id: int):
    if db.session.get(Product, product_id) is None:
        return jsonify({"error": "Product not found"}), 404
    limit = request.args.get("limit", inventory_service.HISTORY_LIMIT_DEFAULT, type=int)
    entries = inventory_service.stock_history(product_id, limit=max(1, min(limit, 500)))
    return jsonify({"history": [e.to_dict() for e in entries]}), 200


@inventory_bp.get("/products/<int:product_id>/status")
def status_route(product_id: int):
    product = db.session.get(Product, product_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    threshold = current_app.config["LOW_STOCK_DEFAULT_THRESHOLD"]
    return jsonify({
        "product_id": product.id,
        "stock_quantity": product.stock_quantity,
        "status": inventory_service.classify_stock(product, threshold),
    }), 200


@inventory_bp.get("/low-stock")
def low_stock_route():
    threshold = current_app.config["LOW_STOCK_DEFAULT_THRESHOLD"]
    products = inventory_service.low_stock_products(threshold)
    return jsonify({"products": [p.to_dict() for p in products]}), 200
