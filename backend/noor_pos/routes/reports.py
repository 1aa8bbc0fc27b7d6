from flask import Blueprint, Response, jsonify, request

from ..services import report_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/summary")
def summary_route():
    days = request.args.get("days", 30, type=int)
    try:
        return jsonify(report_service.sales_summary(days)), 200
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@reports_bp.get("/export/customers.csv")
def export_customers_route():
    return _csv_response(report_service.export_customers_csv(), "customers.csv")


@reports_bp.get("/export/orders.csv")
def export_orders_route():
    days = request.args.get("days", type=int)
    try:
        return _csv_response(report_service.export_orders_csv(days), "orders.csv")
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/export/sales.csv")
def export_sales_route():
    days = request.args.get("days", 30, type=int)
    try:
        return _csv_response(report_service.export_sales_csv(days), f"sales-report-{days}days.csv")
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
