# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Service - atomic multi-item order creation

CRITICAL: An order, its lines and the stock deductions for every line commit
together or not at all. create_order runs in a single unit of work and calls
stock_service.adjust_stock(commit=False) per line so each deduction joins
that unit of work. Any failure rolls back the order row, every line, every
SKU stock change and every ledger row written so far.

CONCURRENCY: On SQLite the unit of work takes the write lock up front
(BEGIN IMMEDIATE), so two orders for the same SKU are serialized; the later
one re-reads stock and fails with InsufficientStockError if the earlier one
consumed it. Lock/stale-version conflicts are retried by run_with_retry and
the whole order is re-validated on each attempt.

MONEY: integer cents. Rate-based tax is rounded half-up to the cent.
"""

from __future__ import annotations

import logging
import math
import uuid
from decimal import Decimal, ROUND_HALF_UP

from ..extensions import db
from ..models import Order, OrderLine, Sku, ORDER_STATUSES
from ..errors import (
    InsufficientStockError,
    InvalidInputError,
    OrderNotFoundError,
    ServiceError,
    SkuNotFoundError,
)
from ..validation import MAX_PRICE_CENTS, MAX_STOCK, ValidationError, coerce_int
from ..time_utils import parse_iso_datetime, utcnow
from .concurrency import run_with_retry, unit_of_work
from .stock_service import adjust_stock

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
WALK_IN_CUSTOMER = "Walk-in"


def generate_order_number(now=None) -> str:
    """ORD-<YYYYMMDDHHMMSS UTC>-<8 upper-case hex chars>."""
    now = now or utcnow()
    return f"ORD-{now.strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:8].upper()}"


def _sanitize_customer(customer) -> dict:
    if not isinstance(customer, dict):
        customer = {}

    def _clean(value):
        return value.strip() or None if isinstance(value, str) else None

    return {
        "name": _clean(customer.get("name")) or WALK_IN_CUSTOMER,
        "phone": _clean(customer.get("phone")),
        "email": _clean(customer.get("email")),
    }


def _parse_items(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise InvalidInputError("Order items are required")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or item.get("sku_id") is None:
            raise InvalidInputError("Each order item must include sku_id", details={"index": index})
        try:
            sku_id = coerce_int("sku_id", item["sku_id"])
        except ValidationError as exc:
            exc.details = {"index": index}
            raise

        quantity = item.get("quantity")
        if isinstance(quantity, float) and math.isfinite(quantity) and quantity.is_integer():
            quantity = int(quantity)
        try:
            quantity = coerce_int("quantity", quantity)
        except ValidationError:
            raise InvalidInputError("Quantity must be a positive integer", details={"index": index})
        if quantity <= 0:
            raise InvalidInputError("Quantity must be a positive integer", details={"index": index})
        if quantity > MAX_STOCK:
            raise InvalidInputError(f"Quantity cannot exceed {MAX_STOCK}", details={"index": index})

        parsed.append((sku_id, quantity))
    return parsed


def _parse_tax(payload: dict):
    """Return ("cents", int), ("rate", Decimal) or (None, None)."""
    if payload.get("tax_cents") is not None:
        tax = payload["tax_cents"]
        if isinstance(tax, bool) or not isinstance(tax, int) or tax < 0:
            raise InvalidInputError("tax_cents must be a non-negative integer")
        if tax > MAX_PRICE_CENTS:
            raise InvalidInputError(f"tax_cents cannot exceed {MAX_PRICE_CENTS}")
        return "cents", tax

    if payload.get("tax_rate") is not None:
        rate = payload["tax_rate"]
        if isinstance(rate, bool) or not isinstance(rate, (int, float)):
            raise InvalidInputError("tax_rate must be a non-negative number")
        if not math.isfinite(rate) or rate < 0:
            raise InvalidInputError("tax_rate must be a non-negative number")
        return "rate", Decimal(str(rate))

    return None, None


def compute_tax_cents(sub_total_cents: int, tax_kind, tax_value) -> int:
    """Tax in cents; rate tax above MAX_PRICE_CENTS raises InvalidInputError."""
    if tax_kind == "cents":
        return tax_value
    if tax_kind == "rate":
        amount = Decimal(sub_total_cents) * tax_value
        if amount >= MAX_PRICE_CENTS + Decimal("0.5"):
            raise InvalidInputError(
                f"Computed tax cannot exceed {MAX_PRICE_CENTS} cents",
                details={"sub_total_cents": sub_total_cents, "tax_rate": str(tax_value)},
            )
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return 0


def create_order(payload: dict, actor_user_id: int | None = None) -> Order:
    """
    Create a completed order and deduct stock for every line atomically.

    Payload:
        items: [{sku_id, quantity}, ...] (non-empty)
        customer: {name, phone, email} (name defaults to "Walk-in")
        tax_cents: explicit tax amount, takes precedence over tax_rate
        tax_rate: fraction of the subtotal (0.1 == 10%)
        metadata: free-form JSON object

    Raises InvalidInputError, SkuNotFoundError, InsufficientStockError.
    """
    if not isinstance(payload, dict):
        raise InvalidInputError("Invalid JSON payload")

    items = _parse_items(payload.get("items"))
    tax_kind, tax_value = _parse_tax(payload)
    customer = _sanitize_customer(payload.get("customer"))
    metadata = payload.get("metadata")

    def _op():
        with unit_of_work():
            now = utcnow()
            order_number = generate_order_number(now)

            order = Order(
                order_number=order_number,
                status="completed",
                customer_name=customer["name"],
                customer_phone=customer["phone"],
                customer_email=customer["email"],
                created_by_user_id=actor_user_id,
                metadata_json=metadata,
                created_at=now,
            )

            sub_total = 0
            for line_number, (sku_id, quantity) in enumerate(items, start=1):
                sku = db.session.get(Sku, sku_id, populate_existing=True, with_for_update=True)
                if sku is None:
                    raise SkuNotFoundError(details={"sku_id": sku_id})

                if sku.stock < quantity:
                    raise InsufficientStockError(
                        f"Insufficient stock for SKU {sku.sku}",
                        details={"sku_id": sku.id, "sku": sku.sku, "stock": sku.stock, "requested": quantity},
                    )

                line_total = quantity * sku.price_cents
                sub_total += line_total

                order.lines.append(
                    OrderLine(
                        line_number=line_number,
                        sku_id=sku.id,
                        product_id=sku.product_id,
                        sku=sku.sku,
                        quantity=quantity,
                        unit_price_cents=sku.price_cents,
                        line_total_cents=line_total,
                        attributes=dict(sku.attributes or {}),
                    )
                )

            tax = compute_tax_cents(sub_total, tax_kind, tax_value)
            order.sub_total_cents = sub_total
            order.tax_cents = tax
            order.total_cents = sub_total + tax

            db.session.add(order)
            db.session.flush()  # order.id for ledger references

            for line in order.lines:
                adjust_stock(
                    line.sku_id,
                    -line.quantity,
                    f"order:{order_number}",
                    actor_user_id,
                    commit=False,
                    reference_order_id=order.id,
                )

            return order

    try:
        order = run_with_retry(_op)
    except ServiceError as exc:
        logger.warning("Order rejected (%d items): %s", len(items), exc)
        raise
    except Exception:
        logger.exception("Failed to create order (%d items) user_id=%s", len(items), actor_user_id)
        raise

    logger.info(
        "Order created order_id=%s order_number=%s lines=%d total_cents=%s user_id=%s",
        order.id, order.order_number, len(order.lines), order.total_cents, actor_user_id,
    )
    return order


def _parse_date(value, label: str, *, end_of_day: bool = False):
    if value is None or value == "":
        return None
    if hasattr(value, "year"):
        return value
    try:
        parsed = parse_iso_datetime(value, end_of_day=end_of_day)
    except (TypeError, ValueError):
        raise InvalidInputError(f"Invalid {label} date")
    return parsed


def parse_date_range(start, end):
    start_dt = _parse_date(start, "start")
    end_dt = _parse_date(end, "end", end_of_day=True)
    if start_dt and end_dt and start_dt > end_dt:
        raise InvalidInputError("start date must be earlier than or equal to end date")
    return start_dt, end_dt


def list_orders(
    page: int | None = 1,
    per_page: int | None = 20,
    status: str | None = None,
    start=None,
    end=None,
    created_by: int | None = None,
) -> dict:
    """Paginated order listing, newest first."""
    per_page = min(per_page if per_page and per_page > 0 else 20, MAX_PAGE_SIZE)
    page = page if page and page > 0 else 1

    query = db.session.query(Order)

    if isinstance(status, str) and status.strip():
        status = status.strip().lower()
        if status not in ORDER_STATUSES:
            raise InvalidInputError("Invalid status filter")
        query = query.filter(Order.status == status)

    start_dt, end_dt = parse_date_range(start, end)
    if start_dt:
        query = query.filter(Order.created_at >= start_dt)
    if end_dt:
        query = query.filter(Order.created_at <= end_dt)

    if created_by is not None:
        query = query.filter(Order.created_by_user_id == created_by)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 0

    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "items": [o.to_dict() for o in orders],
        "count": len(orders),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(details={"order_id": order_id})
    return order
