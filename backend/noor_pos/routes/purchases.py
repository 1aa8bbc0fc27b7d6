# Overview: Flask API routes for supplier purchases; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_operator
from ..services import purchase_service
from ..services.purchase_service import PurchaseError
from ..validation import ValidationError, parse_int
from noor_pos.time_utils import parse_iso_date


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("/suppliers")
def list_suppliers_route():
    suppliers = purchase_service.list_suppliers()
    return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200


@purchases_bp.post("/suppliers")
@require_operator
def create_supplier_route():
    data = dict(request.get_json(silent=True) or {})
    name = data.pop("name", None)
    try:
        supplier = purchase_service.create_supplier(name, **data)
        return jsonify({"supplier": supplier.to_dict()}), 201
    except PurchaseError as e:
        return jsonify({"error": str(e), "details": e.details}), 400


@purchases_bp.get("")
def list_purchases_route():
    supplier_id = request.args.get("supplier_id", type=int)
    limit = request.args.get("limit", purchase_service.LIST_LIMIT_DEFAULT, type=int)
    purchases = purchase_service.list_purchases(supplier_id=supplier_id, limit=max(1, min(limit, 500)))
    return jsonify({"purchases": [p.to_dict() for p in purchases]}), 200


@purchases_bp.post("")
@require_operator
def record_purchase_route():
    data = request.get_json(silent=True) or {}
    try:
        supplier_id = parse_int(data.get("supplier_id"), "supplier_id", minimum=1)
        try:
            purchase_date = parse_iso_date(data.get("purchase_date"))
        except ValueError:
            raise ValidationError("purchase_date must be YYYY-MM-DD")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        purchase = purchase_service.record_purchase(
            supplier_id,
            data.get("items"),
            purchase_date=purchase_date,
            notes=data.get("notes"),
            bill_image_url=data.get("bill_image_url"),
            created_by=g.operator_id,
        )
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 201
    except PurchaseError as e:
        status = 404 if str(e) == "Supplier not found" else 400
        return jsonify({"error": str(e), "details": e.details}), status
    except Exception:
        current_app.logger.exception("Failed to record purchase")
        return jsonify({"error": "Internal server error"}), 500
