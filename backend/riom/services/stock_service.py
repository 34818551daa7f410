# Overview: Stock adjustment engine, stock ledger reads and the low-stock query.

"""
RIOM Stock Invariants (authoritative)

Stock model:
- Sku.stock is the current on-hand counter. It is only ever written here.
- Every write appends exactly one StockHistory row in the same transaction:
    new_stock = previous_stock + change
- The ledger is append-only; rows are never updated or deleted.
- Sum of StockHistory.change for a SKU equals its current stock (SKUs are
  created at 0 and initial stock is booked as an adjustment).

Business invariants:
- Stock may never go negative. There is no override, including for admin
  corrections; corrections are compensating deltas.
- Stock may never exceed MAX_STOCK (the integer column range).
- delta must be a non-zero integer and reason a non-empty string.

Transactions:
- commit=True: adjust_stock opens its own unit of work and commits it.
- commit=False: adjust_stock joins the caller's unit of work and only flushes;
  the caller commits or rolls back (see order_service.create_order).
- Product.total_stock is recomputed inside the same unit of work after each
  adjustment.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import Product, Sku, StockHistory
from ..errors import (
    InsufficientStockError,
    InvalidInputError,
    ServiceError,
    SkuNotFoundError,
)
from ..validation import MAX_STOCK
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .settings_service import get_default_reorder_threshold

logger = logging.getLogger(__name__)


@dataclass
class StockAdjustment:
    """Result of one applied adjustment."""
    sku: Sku
    history: StockHistory

    def to_dict(self) -> dict:
        return {"sku": self.sku.to_dict(), "history": self.history.to_dict()}


def _validate_delta(delta) -> int:
    if delta is None or isinstance(delta, bool):
        raise InvalidInputError("Stock delta must be a non-zero number")
    if isinstance(delta, float):
        if not math.isfinite(delta):
            raise InvalidInputError("Invalid stock delta")
        if not delta.is_integer():
            raise InvalidInputError("Stock delta must be a whole number")
        delta = int(delta)
    if not isinstance(delta, int):
        raise InvalidInputError("Stock delta must be a non-zero number")
    if delta == 0:
        raise InvalidInputError("Stock delta must be a non-zero number")
    if abs(delta) > MAX_STOCK:
        raise InvalidInputError(f"Stock delta cannot exceed {MAX_STOCK} in magnitude")
    return delta


def _validate_reason(reason) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidInputError("Stock adjustment reason is required")
    reason = reason.strip()
    if len(reason) > 255:
        raise InvalidInputError("reason exceeds max length 255")
    return reason


def _refresh_product_stock(product_id: int) -> None:
    """Recompute Product.total_stock from its SKUs."""
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        return
    total = (
        db.session.query(func.coalesce(func.sum(Sku.stock), 0))
        .filter(Sku.product_id == product_id)
        .scalar()
    )
    product.total_stock = int(total or 0)


def _adjust_stock_locked(
    *,
    sku_id: int,
    delta: int,
    reason: str,
    actor_user_id: int | None = None,
    reference_order_id: int | None = None,
    metadata: dict | None = None,
) -> StockAdjustment:
    """Core adjustment without validation of inputs, retry, or commit."""
    sku = (
        lock_for_update(db.session.query(Sku).filter_by(id=sku_id))
        .populate_existing()
        .first()
    )
    if sku is None:
        raise SkuNotFoundError(details={"sku_id": sku_id})

    previous_stock = sku.stock
    new_stock = previous_stock + delta

    if new_stock < 0:
        raise InsufficientStockError(
            f"Insufficient stock for SKU {sku.sku}",
            details={
                "sku_id": sku.id,
                "sku": sku.sku,
                "stock": previous_stock,
                "requested_change": delta,
            },
        )
    if new_stock > MAX_STOCK:
        raise InvalidInputError(
            f"Stock for SKU {sku.sku} cannot exceed {MAX_STOCK}",
            details={"sku_id": sku.id, "stock": previous_stock, "requested_change": delta},
        )

    sku.stock = new_stock

    history = StockHistory(
        sku_id=sku.id,
        product_id=sku.product_id,
        change=delta,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reason=reason,
        reference_order_id=reference_order_id,
        changed_by_user_id=actor_user_id,
        metadata_json=metadata,
    )
    db.session.add(history)
    db.session.flush()

    _refresh_product_stock(sku.product_id)
    db.session.flush()

    logger.info(
        "Stock adjusted sku_id=%s delta=%s reason=%r user_id=%s reference_order_id=%s",
        sku.id, delta, reason, actor_user_id, reference_order_id,
    )
    return StockAdjustment(sku=sku, history=history)


def adjust_stock(
    sku_id: int,
    delta: int,
    reason: str,
    actor_user_id: int | None = None,
    *,
    commit: bool = True,
    reference_order_id: int | None = None,
    metadata: dict | None = None,
) -> StockAdjustment:
    """
    Apply one signed stock change to one SKU and record it in the ledger.

    commit=True: standalone, atomic on its own (manual corrections).
    commit=False: part of the caller's unit of work; nothing is committed and
    the caller is responsible for rollback on failure.

    Raises InvalidInputError, SkuNotFoundError, InsufficientStockError.
    """
    delta = _validate_delta(delta)
    reason = _validate_reason(reason)

    kwargs = dict(
        sku_id=sku_id,
        delta=delta,
        reason=reason,
        actor_user_id=actor_user_id,
        reference_order_id=reference_order_id,
        metadata=metadata,
    )

    if not commit:
        return _adjust_stock_locked(**kwargs)

    def _op():
        with unit_of_work():
            return _adjust_stock_locked(**kwargs)

    try:
        return run_with_retry(_op)
    except ServiceError as exc:
        logger.warning("Stock adjustment rejected sku_id=%s delta=%s: %s", sku_id, delta, exc)
        raise
    except Exception:
        logger.exception("Failed to adjust stock sku_id=%s delta=%s reason=%r", sku_id, delta, reason)
        raise


def bulk_adjust_stock(adjustments, actor_user_id: int | None = None) -> dict:
    """
    Apply a batch of independent adjustments in one unit of work.

    Every entry is validated before any mutation. If any entry fails (bad
    payload, missing SKU, insufficient stock) nothing in the batch is applied
    and the triggering error is raised.
    """
    if adjustments is None:
        return {"results": []}
    if not isinstance(adjustments, list):
        raise InvalidInputError("adjustments must be a list")
    if not adjustments:
        return {"results": []}

    prepared = []
    for index, item in enumerate(adjustments):
        if not isinstance(item, dict) or not item.get("sku_id") or item.get("delta") is None or not item.get("reason"):
            raise InvalidInputError("Invalid stock adjustment payload", details={"index": index})
        try:
            delta = _validate_delta(item["delta"])
            reason = _validate_reason(item["reason"])
        except InvalidInputError as exc:
            exc.details = {"index": index}
            raise
        prepared.append(
            dict(
                sku_id=item["sku_id"],
                delta=delta,
                reason=reason,
                actor_user_id=item.get("user_id") or actor_user_id,
                reference_order_id=item.get("reference_order_id"),
                metadata=item.get("metadata"),
            )
        )

    def _op():
        with unit_of_work():
            return [_adjust_stock_locked(**p) for p in prepared]

    try:
        results = run_with_retry(_op)
    except ServiceError as exc:
        logger.warning("Bulk stock update rejected (%d entries): %s", len(prepared), exc)
        raise
    except Exception:
        logger.exception("Bulk stock update failed (%d entries)", len(prepared))
        raise

    return {"results": results}


def find_low_stock(default_threshold: int | None = None) -> list[dict]:
    """
    SKUs at or below their effective reorder threshold.

    Effective threshold: the SKU's own reorder_threshold, or default_threshold
    when the SKU has none. default_threshold is read from settings when not
    given. Sorted by stock ascending, then SKU code.
    """
    if default_threshold is None:
        default_threshold = get_default_reorder_threshold()

    effective = func.coalesce(Sku.reorder_threshold, default_threshold)

    rows = (
        db.session.query(
            Sku.id.label("sku_id"),
            Sku.product_id,
            Product.name.label("product_name"),
            Sku.sku,
            Sku.stock,
            effective.label("reorder_threshold"),
        )
        .outerjoin(Product, Product.id == Sku.product_id)
        .filter(Sku.stock <= effective)
        .order_by(Sku.stock.asc(), Sku.sku.asc())
        .all()
    )

    return [
        {
            "sku_id": row.sku_id,
            "product_id": row.product_id,
            "product_name": row.product_name,
            "sku": row.sku,
            "stock": int(row.stock),
            "reorder_threshold": int(row.reorder_threshold),
        }
        for row in rows
    ]


def list_stock_history(sku_id: int, limit: int = 50) -> list[StockHistory]:
    """Ledger rows for a SKU, newest first."""
    if db.session.get(Sku, sku_id) is None:
        raise SkuNotFoundError(details={"sku_id": sku_id})

    limit = max(1, min(limit, 500))
    return (
        db.session.query(StockHistory)
        .filter_by(sku_id=sku_id)
        .order_by(StockHistory.created_at.desc(), StockHistory.id.desc())
        .limit(limit)
        .all()
    )


def ledger_balance(sku_id: int) -> int:
    """Sum of all ledger changes for a SKU; equals Sku.stock when consistent."""
    total = (
        db.session.query(func.coalesce(func.sum(StockHistory.change), 0))
        .filter(StockHistory.sku_id == sku_id)
        .scalar()
    )
    return int(total or 0)
