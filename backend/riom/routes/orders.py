# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""
Order routes.

Available to every authenticated role. Staff only see orders they created;
admins see all orders and may filter by creator.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import OrderNotFoundError, ServiceError
from ..services import order_service

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create a completed order; stock for every line is deducted atomically.

    Body: {"items": [{"sku_id", "quantity"}], "customer": {...}?,
           "tax_cents": int? | "tax_rate": number?, "metadata": {...}?}
    """
    payload = request.get_json(silent=True)
    try:
        order = order_service.create_order(payload, actor_user_id=g.current_user.id)
        return jsonify({"order": order.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params: page, per_page (max 100), status, start, end (ISO-8601),
    created_by (admin only).
    """
    user = g.current_user
    created_by = request.args.get("created_by", type=int) if user.is_admin else user.id

    try:
        result = order_service.list_orders(
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            status=request.args.get("status"),
            start=request.args.get("start"),
            end=request.args.get("end"),
            created_by=created_by,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        user = g.current_user
        if not user.is_admin and order.created_by_user_id != user.id:
            raise OrderNotFoundError(details={"order_id": order_id})
        return jsonify({"order": order.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500
