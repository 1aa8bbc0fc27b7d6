# backend/noor_pos/routes/system.py
"""
System health endpoint.

Reports database reachability and basic catalog counts for deployment checks.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import DocumentSequence, Order, Product
from ..services.document_service import INVOICE
from noor_pos.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        order_count = db.session.query(Order).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "orders": order_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_invoice_sequence_health() -> dict:
    """An uninitialised sequence still works (first sale creates it); report it as degraded."""
    start_time = time.time()
    try:
        sequence = db.session.query(DocumentSequence).filter_by(document_type=INVOICE).first()
        elapsed_ms = (time.time() - start_time) * 1000
        if sequence is None:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Invoice sequence not initialised (run `flask system init`)",
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"next_invoice_number": sequence.next_number},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Invoice sequence health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Invoice sequence error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    sequence_health = check_invoice_sequence_health()

    all_checks = [database_health, sequence_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "invoice_sequence": sequence_health,
        }
    }

    return response, http_status
