# Overview: Flask API routes for stock alerts; returns JSON responses.

from flask import Blueprint, current_app, jsonify

from ..decorators import require_auth
from ..services import stock_service

alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


@alerts_bp.get("/low-stock")
@require_auth
def low_stock_route():
    """SKUs at or below their reorder threshold, lowest stock first."""
    try:
        items = stock_service.find_low_stock()
        return jsonify({"items": items, "count": len(items)}), 200
    except Exception:
        current_app.logger.exception("Failed to load low-stock alerts")
        return jsonify({"error": "Internal server error"}), 500
