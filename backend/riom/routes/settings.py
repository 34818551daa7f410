# Overview: Flask API routes for global settings; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import settings_service

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
@require_admin
def get_settings_route():
    try:
        return jsonify({"settings": settings_service.get_settings().to_dict()}), 200
    except Exception:
        current_app.logger.exception("Failed to load settings")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.put("")
@require_auth
@require_admin
def update_settings_route():
    """Body: {"default_reorder_threshold": int >= 0?, "currency": "XXX"?}"""
    data = request.get_json(silent=True)
    try:
        settings = settings_service.update_settings(data, user_id=g.current_user.id)
        return jsonify({"settings": settings.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500
