# Overview: Request decorators for API routes; authentication, tenant context and admin checks.

from functools import wraps
from flask import request, jsonify, g

from .models.auth import USER_ROLE_ADMIN
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'org_id')


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.org_id: The organization ID (tenant context)
    - g.session_context: The full SessionContext object

    Services never look these up themselves; routes pass g.org_id down.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User or organization deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "error": "AUTH_REQUIRED", "message": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"success": False, "error": "AUTH_REQUIRED", "message": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.org_id = context.org_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    Require an ADMIN user. Must be stacked under require_auth.

    Used for ledger account administration and integrity audits.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"success": False, "error": "AUTH_REQUIRED", "message": "Authentication required"}), 401

        if g.current_user.role != USER_ROLE_ADMIN:
            return jsonify({
                "success": False,
                "error": "PERMISSION_DENIED",
                "message": "Administrator role required",
            }), 403

        return f(*args, **kwargs)

    return decorated_function
