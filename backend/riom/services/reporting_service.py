# Overview: Service-layer operations for sales analytics; encapsulates business logic and database work.

"""
Sales analytics over completed orders.

Daily buckets (daily_sales_trend) use SQLite strftime and therefore need a
SQLite DATABASE_URL. The other reports are portable aggregates.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func

from ..extensions import db
from ..models import Order, OrderLine, Product, Sku
from ..time_utils import to_utc_z
from .order_service import MAX_PAGE_SIZE, parse_date_range


UNCATEGORIZED = "Uncategorized"


def _completed_orders(query, start_dt: datetime | None, end_dt: datetime | None):
    query = query.filter(Order.status == "completed")
    if start_dt:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt:
        query = query.filter(Order.created_at <= end_dt)
    return query


def _range_dict(start_dt, end_dt) -> dict:
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
    }


def sales_summary(start=None, end=None) -> dict:
    start_dt, end_dt = parse_date_range(start, end)

    orders_query = _completed_orders(
        db.session.query(
            func.count(Order.id).label("total_orders"),
            func.coalesce(func.sum(Order.total_cents), 0).label("total_sales_cents"),
        ),
        start_dt,
        end_dt,
    )
    order_row = orders_query.one()

    units_query = _completed_orders(
        db.session.query(func.coalesce(func.sum(OrderLine.quantity), 0)).join(Order, OrderLine.order_id == Order.id),
        start_dt,
        end_dt,
    )
    total_units = int(units_query.scalar() or 0)

    total_orders = int(order_row.total_orders or 0)
    total_sales = int(order_row.total_sales_cents or 0)
    avg_order_value = 0
    if total_orders:
        avg_order_value = int((Decimal(total_sales) / total_orders).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return {
        **_range_dict(start_dt, end_dt),
        "total_orders": total_orders,
        "total_sales_cents": total_sales,
        "total_units_sold": total_units,
        "avg_order_value_cents": avg_order_value,
    }


def top_selling(start=None, end=None, limit: int | None = 5) -> dict:
    """Best sellers by quantity, then by sales."""
    start_dt, end_dt = parse_date_range(start, end)
    limit = min(limit if limit and limit > 0 else 5, MAX_PAGE_SIZE)

    total_qty = func.sum(OrderLine.quantity)
    total_sales = func.sum(OrderLine.line_total_cents)

    query = _completed_orders(
        db.session.query(
            OrderLine.sku_id.label("sku_id"),
            func.max(OrderLine.sku).label("sku_code"),
            func.max(OrderLine.product_id).label("product_id"),
            total_qty.label("total_qty"),
            total_sales.label("total_sales_cents"),
        ).join(Order, OrderLine.order_id == Order.id),
        start_dt,
        end_dt,
    )
    rows = (
        query.group_by(OrderLine.sku_id)
        .order_by(total_qty.desc(), total_sales.desc(), OrderLine.sku_id.asc())
        .limit(limit)
        .all()
    )

    items = []
    for row in rows:
        sku = db.session.get(Sku, row.sku_id)
        product_id = sku.product_id if sku else row.product_id
        product = db.session.get(Product, product_id) if product_id else None
        items.append(
            {
                "sku_id": row.sku_id,
                "sku": sku.sku if sku else row.sku_code,
                "attributes": dict(sku.attributes or {}) if sku else None,
                "product_id": product_id,
                "product_name": product.name if product else None,
                "product_category": product.category if product else None,
                "stock": product.total_stock if product else 0,
                "total_qty": int(row.total_qty or 0),
                "total_sales_cents": int(row.total_sales_cents or 0),
            }
        )

    return {**_range_dict(start_dt, end_dt), "limit": limit, "items": items}


def daily_sales_trend(start=None, end=None) -> dict:
    start_dt, end_dt = parse_date_range(start, end)

    day_expr = func.strftime("%Y-%m-%d", Order.created_at)

    query = _completed_orders(
        db.session.query(
            day_expr.label("date"),
            func.coalesce(func.sum(OrderLine.quantity), 0).label("total_qty"),
            func.coalesce(func.sum(OrderLine.line_total_cents), 0).label("total_sales_cents"),
        ).join(Order, OrderLine.order_id == Order.id),
        start_dt,
        end_dt,
    )
    rows = query.group_by("date").order_by("date").all()

    return {
        **_range_dict(start_dt, end_dt),
        "rows": [
            {
                "date": row.date,
                "total_qty": int(row.total_qty or 0),
                "total_sales_cents": int(row.total_sales_cents or 0),
            }
            for row in rows
        ],
    }


def category_breakdown(start=None, end=None) -> dict:
    start_dt, end_dt = parse_date_range(start, end)

    category = func.coalesce(func.nullif(Product.category, ""), UNCATEGORIZED)
    total_sales = func.sum(OrderLine.line_total_cents)

    query = _completed_orders(
        db.session.query(
            category.label("category"),
            func.coalesce(total_sales, 0).label("total_sales_cents"),
            func.coalesce(func.sum(OrderLine.quantity), 0).label("total_qty"),
            func.count(func.distinct(OrderLine.product_id)).label("product_count"),
        )
        .join(Order, OrderLine.order_id == Order.id)
        .outerjoin(Product, Product.id == OrderLine.product_id),
        start_dt,
        end_dt,
    )
    rows = query.group_by(category).order_by(total_sales.desc(), category.asc()).all()

    return {
        **_range_dict(start_dt, end_dt),
        "rows": [
            {
                "category": row.category,
                "total_sales_cents": int(row.total_sales_cents or 0),
                "total_qty": int(row.total_qty or 0),
                "product_count": int(row.product_count or 0),
            }
            for row in rows
        ],
    }
