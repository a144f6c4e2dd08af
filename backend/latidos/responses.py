# Overview: JSON response helpers shared by the API blueprints.

from flask import current_app, g, jsonify

from .services.errors import FinanceError
from .services.signer_service import sign


def error_response(exc: FinanceError):
    """Translate a service error into {"success": false, "error", "message"}."""
    if exc.status >= 500:
        current_app.logger.error("Finance invariant violated: %s", exc)
    return jsonify(exc.to_dict()), exc.status


def internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({
        "success": False,
        "error": "INTERNAL_ERROR",
        "message": "Internal server error",
    }), 500


def request_signature(data: dict):
    """
    Verify the optional operator PIN in a request body.

    Runs before any financial write. LATIDOS_REQUIRE_SIGNER makes the PIN
    mandatory.
    """
    return sign(
        g.org_id,
        data.get("pin"),
        required=current_app.config.get("LATIDOS_REQUIRE_SIGNER", False),
    )
