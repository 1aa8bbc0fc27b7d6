# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


OPERATOR_HEADER = "X-Operator-Id"


def require_operator(f):
    """
    Require the acting operator's id and expose it as g.operator_id.

    Services never read g directly; routes pass g.operator_id down as an
    explicit created_by / operator_id argument. Sign-in itself happens in
    front of this service, so the header value is trusted as-is.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator_id = (request.headers.get(OPERATOR_HEADER) or "").strip()
        if not operator_id:
            return jsonify({"error": "Operator id required", "details": {"header": OPERATOR_HEADER}}), 401
        if len(operator_id) > 64:
            return jsonify({"error": "Operator id too long"}), 400

        g.operator_id = operator_id
        return f(*args, **kwargs)

    return decorated_function
