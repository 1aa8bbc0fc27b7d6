# Overview: Flask API routes for POS billing; parses input and returns JSON responses.

from flask import Blueprint, Response, current_app, g, jsonify, request

from ..decorators import require_operator
from ..extensions import db
from ..models import Salesman
from ..services import billing_service
from ..services.billing_service import SaleError
from ..services.receipt_service import render_receipt
from ..validation import ValidationError, parse_bool, parse_int, parse_money
from noor_pos.time_utils import parse_iso_date


billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


def _sale_error(e: SaleError):
    body = {"error": str(e), "details": e.details}
    title = getattr(e, "title", None)
    if title:
        body["title"] = title
    return jsonify(body), 400


@billing_bp.get("/scan")
def scan_route():
    try:
        product = billing_service.scan_sku(request.args.get("sku", ""))
        return jsonify({"product": product.to_dict()}), 200
    except billing_service.ProductNotFoundError as e:
        return jsonify({"error": str(e), "title": e.title, "details": e.details}), 404
    except SaleError as e:
        return _sale_error(e)


@billing_bp.post("/cart")
def cart_totals_route():
    """Recompute line figures and totals for a cart the client holds."""
    data = request.get_json(silent=True) or {}
    try:
        cart = billing_service.build_cart(
            data.get("items") or [],
            default_discount_percent=current_app.config["POS_DEFAULT_DISCOUNT_PERCENT"],
        )
        return jsonify({"cart": cart.to_dict()}), 200
    except SaleError as e:
        return _sale_error(e)


@billing_bp.post("/sales")
@require_operator
def commit_sale_route():
    data = request.get_json(silent=True) or {}

    try:
        customer_id = parse_int(data.get("customer_id"), "customer_id", minimum=1, allow_none=True)
        salesman_id = parse_int(data.get("salesman_id"), "salesman_id", minimum=1, allow_none=True)
        cash_amount = parse_money(data.get("cash_amount"), "cash_amount", allow_none=True)
        card_amount = parse_money(data.get("card_amount"), "card_amount", allow_none=True)
        credit_amount = parse_money(data.get("credit_amount"), "credit_amount", allow_none=True)
        try:
            due_date = parse_iso_date(data.get("alteration_due_date"))
        except ValueError:
            raise ValidationError("alteration_due_date must be YYYY-MM-DD")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        cart = billing_service.build_cart(
            data.get("items") or [],
            default_discount_percent=current_app.config["POS_DEFAULT_DISCOUNT_PERCENT"],
        )
        result = billing_service.commit_sale(
            cart,
            payment_method=data.get("payment_method") or "cash",
            customer_id=customer_id,
            salesman_id=salesman_id,
            cash_amount=cash_amount,
            card_amount=card_amount,
            credit_amount=credit_amount,
            notes=data.get("notes"),
            needs_alteration=parse_bool(data.get("needs_alteration", False)),
            alteration_due_date=due_date,
            alteration_notes=data.get("alteration_notes"),
            created_by=g.operator_id,
        )
        return jsonify(result.to_dict()), 201

    except SaleError as e:
        return _sale_error(e)
    except Exception:
        current_app.logger.exception("Failed to commit sale")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.post("/receipt")
def render_receipt_route():
    """Render receipt data (as returned with a committed sale) to printable HTML."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "receipt data is required"}), 400
    try:
        html = render_receipt(data, store_name=current_app.config["STORE_DISPLAY_NAME"])
    except (TypeError, ValueError, ArithmeticError):
        return jsonify({"error": "Invalid receipt data"}), 400
    return Response(html, mimetype="text/html")


@billing_bp.get("/invoices/<int:invoice_id>/receipt")
def reprint_receipt_route(invoice_id: int):
    try:
        data = billing_service.receipt_for_invoice(invoice_id)
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    html = render_receipt(data, store_name=current_app.config["STORE_DISPLAY_NAME"])
    return Response(html, mimetype="text/html")


@billing_bp.post("/customers")
@require_operator
def create_customer_route():
    data = request.get_json(silent=True) or {}
    try:
        customer = billing_service.create_walk_in_customer(
            data.get("name"),
            phone=data.get("phone"),
            email=data.get("email"),
        )
        return jsonify({"customer": customer.to_dict()}), 201
    except SaleError as e:
        return _sale_error(e)


@billing_bp.get("/salesmen")
def list_salesmen_route():
    salesmen = (
        db.session.query(Salesman)
        .filter(Salesman.is_active.is_(True))
        .order_by(Salesman.name.asc())
        .all()
    )
    return jsonify({"salesmen": [s.to_dict() for s in salesmen]}), 200
