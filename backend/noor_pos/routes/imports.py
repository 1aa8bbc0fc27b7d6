# Overview: Flask API routes for spreadsheet product imports; parses input and returns JSON responses.

"""
Import Routes

Supports Excel (.xlsx) and CSV uploads. Preview parses and validates only;
commit writes the valid rows and records an import history entry.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_operator
from ..services import import_service
from ..services.import_parser import ImportError


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


def _uploaded_file():
    if "file" not in request.files:
        return None, None
    file = request.files["file"]
    return file.read(), file.filename or ""


@imports_bp.post("/preview")
@require_operator
def preview_route():
    content, filename = _uploaded_file()
    if content is None:
        return jsonify({"error": "file is required"}), 400

    try:
        result = import_service.preview_import(
            content,
            filename,
            max_rows=current_app.config["IMPORT_MAX_ROWS"],
        )
        return jsonify(result.to_dict()), 200
    except ImportError as e:
        return jsonify({"error": str(e), "title": getattr(e, "title", None), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to preview import")
        return jsonify({"error": "Internal server error"}), 500


@imports_bp.post("")
@require_operator
def commit_route():
    content, filename = _uploaded_file()
    if content is None:
        return jsonify({"error": "file is required"}), 400

    try:
        parsed, result = import_service.run_import(
            content,
            filename,
            imported_by=g.operator_id,
            batch_size=current_app.config["IMPORT_BATCH_SIZE"],
            max_rows=current_app.config["IMPORT_MAX_ROWS"],
        )
        return jsonify({"parse": parsed.to_dict(), "result": result.to_dict()}), 201
    except ImportError as e:
        return jsonify({"error": str(e), "title": getattr(e, "title", None), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to commit import")
        return jsonify({"error": "Internal server error"}), 500


@imports_bp.get("")
def list_route():
    limit = request.args.get("limit", import_service.HISTORY_LIMIT_DEFAULT, type=int)
    records = import_service.list_imports(limit=max(1, min(limit, 500)))
    return jsonify({"imports": [r.to_dict() for r in records]}), 200
