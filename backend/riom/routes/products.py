# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations are open to every role
- Write operations require the admin role
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import products_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _parse_bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - page, per_page (default 10, max 100)
    - name, category: case-insensitive substring filters
    - is_active: true/false
    """
    try:
        result = products_service.list_products(
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            name=(request.args.get("name") or "").strip() or None,
            category=(request.args.get("category") or "").strip() or None,
            is_active=_parse_bool_arg("is_active"),
        )
        return jsonify(result), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_admin
def create_product_route():
    """
    Create a product. An optional "skus" list creates its SKUs (with initial
    stock) in the same transaction.
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload", "code": "INVALID_INPUT"}), 400
    payload = dict(payload)
    skus = payload.pop("skus", None)

    try:
        product = products_service.create_product(payload, skus=skus, actor_user_id=g.current_user.id)
        body = product.to_dict()
        body["skus"] = [s.to_dict() for s in product.skus]
        return jsonify({"product": body}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        body = product.to_dict()
        body["skus"] = [s.to_dict() for s in product.skus]
        return jsonify({"product": body}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_admin
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.update_product(product_id, payload)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product_route(product_id: int):
    """Soft delete (is_active=false)."""
    try:
        product = products_service.deactivate_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
