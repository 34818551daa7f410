# Overview: Flask API routes for sales analytics; parses input and returns JSON responses.

"""
Sales analytics routes (admin only).

All endpoints accept optional ISO-8601 "start"/"end" query params (inclusive)
and default to the last 30 days.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_auth
from ..errors import ServiceError
from ..services import reporting_service
from ..time_utils import trailing_window

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")

DEFAULT_RANGE_DAYS = 30


def _range_args():
    start = request.args.get("start") or None
    end = request.args.get("end") or None
    if start is None and end is None:
        return trailing_window(DEFAULT_RANGE_DAYS)
    return start, end


def _run(report, label: str, **kwargs):
    try:
        start, end = _range_args()
        return jsonify(report(start=start, end=end, **kwargs)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build %s report", label)
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/sales-summary")
@require_auth
@require_admin
def sales_summary_route():
    return _run(reporting_service.sales_summary, "sales summary")


@analytics_bp.get("/top-selling")
@require_auth
@require_admin
def top_selling_route():
    return _run(reporting_service.top_selling, "top selling", limit=request.args.get("limit", default=5, type=int))


@analytics_bp.get("/daily-trend")
@require_auth
@require_admin
def daily_trend_route():
    return _run(reporting_service.daily_sales_trend, "daily trend")


@analytics_bp.get("/category-breakdown")
@require_auth
@require_admin
def category_breakdown_route():
    return _run(reporting_service.category_breakdown, "category breakdown")
