# Overview: Flask API routes for user management; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import auth_service

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    try:
        users = auth_service.list_users()
        return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>/role")
@require_auth
@require_admin
def update_user_role_route(user_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload", "code": "INVALID_INPUT"}), 400
    try:
        user = auth_service.update_user_role(user_id, data.get("role"))
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user role")
        return jsonify({"error": "Internal server error"}), 500
