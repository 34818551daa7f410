# Overview: Flask API routes for SKU and stock operations; parses input and returns JSON responses.

"""
SKU and stock routes.

Stock can only change through POST /<id>/adjust, POST /bulk-adjust or an
order. PUT /<id> never touches stock.

SECURITY: All routes require authentication.
- Reads, search and barcode scan are open to every role
- Create, update and stock adjustments require the admin role
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError, SkuNotFoundError
from ..services import sku_service, stock_service

skus_bp = Blueprint("skus", __name__, url_prefix="/api/skus")


@skus_bp.get("")
@require_auth
def list_skus_route():
    try:
        result = sku_service.list_skus(
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
            product_id=request.args.get("product_id", type=int),
            q=request.args.get("q"),
            barcode=request.args.get("barcode"),
        )
        return jsonify(result), 200
    except Exception:
        current_app.logger.exception("Failed to list SKUs")
        return jsonify({"error": "Internal server error"}), 500


@skus_bp.post("")
@require_auth
@require_admin
def create_sku_route():
    payload = request.get_json(silent=True) or {}
    try:
        sku = sku_service.create_sku(payload, actor_user_id=g.current_user.id)
        return jsonify({"sku": sku.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create SKU")
        return jsonify({"error": "Internal server error"}), 500


@skus_bp.get("/search")
@require_auth
def search_skus_route():
    try:
        results = sku_service.search_skus(request.args.get("query") or request.args.get("q") or "")
        return jsonify({"items": results, "count": len(results)}), 200
    except Exception:
        current_app.logger.exception("Failed to search SKUs")
        return jsonify({"error": "Internal server error"}), 500


@skus_bp.get("/scan")
@require_auth
def scan_barcode_route():
    barcode = request.args.get("barcode")
    if not barcode or not barcode.strip():
        return jsonify({"error": "barcode is required", "code": "INVALID_INPUT"}), 400
    try:
        sku = sku_service.find_by_barcode(barcode)
        if sku is None:
            raise SkuNotFoundError(details={"barcode": barcode.strip()})
        return jsonify({"sku": sku}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to scan barcode")
        return jsonify({"error": "Internal server error"}), 500


@skus_bp.post("/bulk-adjust")
@require_auth
@require_admin
def bulk_adjust_route():
    """
    Body: {"adjustments": [{"sku_id", "delta", "reason", ...}, ...]}, or the
    bare list of adjustments.

    All or nothing: one failing entry rejects the whole batch.
    """
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        adjustments = data.get("adjustments")
    elif isinstance(data, list) or data is None:
        adjustments = data
    else:
        return jsonify({"error": "Invalid JSON payload", "code": "INVALID_INPUT"}), 400
    try:
        result = stock_service.bulk_adjust_stock(adjustments, actor_user_id=g.current_user.id)
        return jsonify({"results": [r.to_dict() for r in result["results"]]}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@skus_bp.get("/<int:sku_id>")
@require_auth
def get_sku_route(sku_id: int):
    try:
        return jsonify({"sku": sku_service.get_sku(sku_id).to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get SKU")
        return jsonify({"error": "Internal server error"}), 500


@skus_bp.put("/<int:sku_id>")
@require_auth
@require_admin
def update_sku_route(sku_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        sku = sku_service.update_sku(sku_id, payload)
        return jsonify({"sku": sku.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update SKU")
        return jsonify({"error": "Internal server error"}), 500


@skus_bp.post("/<int:sku_id>/adjust")
@require_auth
@require_admin
def adjust_stock_route(sku_id: int):
    """
    Manual stock correction.

    Body: {"delta": int (non-zero, signed), "reason": str, "metadata": {...}?}
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload", "code": "INVALID_INPUT"}), 400
    try:
        result = stock_service.adjust_stock(
            sku_id,
            data.get("delta"),
            data.get("reason"),
            g.current_user.id,
            metadata=data.get("metadata"),
        )
        return jsonify(result.to_dict()), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@skus_bp.get("/<int:sku_id>/history")
@require_auth
def stock_history_route(sku_id: int):
    limit = request.args.get("limit", default=50, type=int)
    try:
        rows = stock_service.list_stock_history(sku_id, limit=limit)
        return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock history")
        return jsonify({"error": "Internal server error"}), 500
