# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/latidos/routes/auth.py
"""
Authentication API routes

- POST /api/auth/login: org code + username + password -> bearer token
- POST /api/auth/logout: revoke the current token
- GET  /api/auth/me: current user and tenant context
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import AuthenticationError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "org_code": "LATIDOS",
        "username": "admin",
        "password": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        org_code = data.get("org_code")
        username = data.get("username")
        password = data.get("password")

        if not all([org_code, username, password]):
            return jsonify({
                "success": False,
                "error": "VALIDATION_ERROR",
                "message": "org_code, username and password required",
            }), 400

        try:
            user = auth_service.authenticate(org_code, username, password)
        except AuthenticationError as e:
            return jsonify({"success": False, "error": "INVALID_CREDENTIALS", "message": str(e)}), 401

        session, token = session_service.create_session(user.id)

        return jsonify({
            "success": True,
            "user": user.to_dict(),
            "token": token,
            "org_id": session.org_id,
            "expires_at": session.expires_at.isoformat() + "Z",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"success": False, "error": "INTERNAL_ERROR", "message": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        token = request.headers.get("Authorization").split(" ", 1)[1]
        session_service.revoke_session(token)
        return jsonify({"success": True, "message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"success": False, "error": "INTERNAL_ERROR", "message": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"success": True, "user": g.current_user.to_dict(), "org_id": g.org_id})
