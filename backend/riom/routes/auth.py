# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Accounts are created by administrators, either through POST /register or the
CLI (flask users create). There is no self-registration.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
@require_auth
@require_admin
def register_route():
    """
    Create a user account (admin only).

    Body: {"email", "password", "name", "role"?}; role defaults to staff.
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload", "code": "INVALID_INPUT"}), 400

    if not data.get("email") or not data.get("password") or not data.get("name"):
        return jsonify({"error": "email, password and name are required", "code": "INVALID_INPUT"}), 400

    try:
        user = auth_service.create_user(
            data["email"],
            data["password"],
            name=data["name"],
            role=data.get("role") or auth_service.DEFAULT_ROLE,
        )
        return jsonify({"user": user.to_dict(), "message": "User registered successfully"}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "code": "INVALID_INPUT"}), 400
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            return jsonify({"error": "email and password required", "code": "INVALID_INPUT"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials", "code": "UNAUTHORIZED"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
