# Overview: Service-layer operations for SKUs; encapsulates business logic and database work.

"""
SKU Service

SKUs are the stock-carrying variants of a Product. This module owns their
master data (code, barcode, attributes, price, reorder threshold). It never
writes Sku.stock directly: initial stock is booked through
stock_service.adjust_stock so the ledger records it like any other change.
"""

from __future__ import annotations

import logging

from sqlalchemy import String, cast, func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Sku
from ..errors import (
    DuplicateBarcodeError,
    DuplicateSkuError,
    ProductNotFoundError,
    SkuNotFoundError,
)
from ..validation import ModelValidationPolicy, enforce_rules_sku, validate_payload
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .identifier_service import allocate_barcode, barcode_exists
from .settings_service import get_default_reorder_threshold
from .stock_service import adjust_stock

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10
MAX_PAGE_SIZE = 100

SKU_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "sku", "barcode", "attributes", "price_cents", "stock", "reorder_threshold"},
    required_on_create={"product_id", "sku", "price_cents"},
)

SKU_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "barcode", "attributes", "price_cents", "reorder_threshold"},
)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _sku_code_exists(code: str, exclude_sku_id: int | None = None) -> bool:
    q = db.session.query(Sku.id).filter(Sku.sku == code)
    if exclude_sku_id is not None:
        q = q.filter(Sku.id != exclude_sku_id)
    return db.session.query(q.exists()).scalar()


def _to_lookup_dict(sku: Sku) -> dict:
    data = sku.to_dict()
    data["product_name"] = sku.product.name if sku.product else None
    return data


def require_sku(sku_id: int) -> Sku:
    sku = db.session.get(Sku, sku_id)
    if sku is None:
        raise SkuNotFoundError(details={"sku_id": sku_id})
    return sku


def prepare_sku_patch(payload: dict, *, default_threshold: int | None = None) -> dict:
    """Validate a create payload and fill in defaults. No database writes."""
    if isinstance(payload, dict) and "barcode" in payload:
        barcode = payload["barcode"]
        if barcode is None or (isinstance(barcode, str) and not barcode.strip()):
            # Blank barcode means "generate one"
            payload = {k: v for k, v in payload.items() if k != "barcode"}
    patch = validate_payload(model=Sku, payload=payload, policy=SKU_CREATE_POLICY, partial=False)
    enforce_rules_sku(patch)

    if patch.get("stock") is None:
        patch["stock"] = 0
    if patch.get("reorder_threshold") is None:
        if default_threshold is None:
            default_threshold = get_default_reorder_threshold()
        patch["reorder_threshold"] = default_threshold
    patch.setdefault("attributes", {})
    return patch


def _create_sku_locked(patch: dict, actor_user_id: int | None) -> Sku:
    product = lock_for_update(db.session.query(Product).filter_by(id=patch["product_id"])).first()
    if product is None:
        raise ProductNotFoundError("Parent product not found", details={"product_id": patch["product_id"]})

    if _sku_code_exists(patch["sku"]):
        raise DuplicateSkuError("SKU code already exists", details={"sku": patch["sku"]})

    barcode = patch.get("barcode")
    if barcode:
        if barcode_exists(barcode):
            raise DuplicateBarcodeError("Barcode already exists", details={"barcode": barcode})
    else:
        barcode = allocate_barcode()

    sku = Sku(
        product_id=product.id,
        sku=patch["sku"],
        barcode=barcode,
        attributes=patch["attributes"],
        price_cents=patch["price_cents"],
        stock=0,
        reorder_threshold=patch["reorder_threshold"],
    )
    db.session.add(sku)
    db.session.flush()

    product.sku_count = (product.sku_count or 0) + 1

    initial_stock = patch["stock"]
    if initial_stock > 0:
        adjust_stock(sku.id, initial_stock, "Initial stock", actor_user_id, commit=False)

    logger.info("SKU created sku_id=%s sku=%r barcode=%s initial_stock=%s", sku.id, sku.sku, sku.barcode, initial_stock)
    return sku


def raise_for_integrity_error(exc: IntegrityError) -> None:
    message = str(exc.orig).lower()
    if "barcode" in message:
        raise DuplicateBarcodeError("Barcode already exists") from exc
    if "sku" in message:
        raise DuplicateSkuError("SKU code already exists") from exc
    raise exc


def create_sku(payload: dict, *, actor_user_id: int | None = None, commit: bool = True) -> Sku:
    """
    Create a SKU under an existing product.

    Required: product_id, sku, price_cents. stock defaults to 0,
    reorder_threshold to the global default at creation time, barcode is
    generated when omitted.

    commit=False: the caller owns the unit of work (product cascade create).
    """
    patch = prepare_sku_patch(payload)

    if not commit:
        return _create_sku_locked(patch, actor_user_id)

    def _op():
        with unit_of_work():
            return _create_sku_locked(patch, actor_user_id)

    try:
        return run_with_retry(_op)
    except IntegrityError as exc:
        raise_for_integrity_error(exc)


def get_sku(sku_id: int) -> Sku:
    return require_sku(sku_id)


def list_skus(
    page: int | None = 1,
    per_page: int | None = 10,
    product_id: int | None = None,
    q: str | None = None,
    barcode: str | None = None,
) -> dict:
    """Paginated SKU listing, newest first."""
    per_page = min(per_page or 10, MAX_PAGE_SIZE)
    page = max(page or 1, 1)

    query = db.session.query(Sku)

    if product_id:
        query = query.filter(Sku.product_id == product_id)

    conditions = []
    if q and q.strip():
        pattern = f"%{_escape_like(q.strip())}%"
        conditions.append(Sku.sku.ilike(pattern, escape="\\"))
        conditions.append(Sku.barcode.ilike(pattern, escape="\\"))
    if barcode and barcode.strip():
        conditions.append(func.lower(Sku.barcode) == barcode.strip().lower())
    if conditions:
        query = query.filter(or_(*conditions))

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    skus = (
        query.order_by(Sku.created_at.desc(), Sku.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "items": [s.to_dict() for s in skus],
        "count": len(skus),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def update_sku(sku_id: int, payload: dict) -> Sku:
    """
    Update SKU master data. Stock is not writable here; use adjust_stock.
    """
    patch = validate_payload(model=Sku, payload=payload, policy=SKU_UPDATE_POLICY, partial=True)
    enforce_rules_sku(patch)

    sku = require_sku(sku_id)

    if "sku" in patch and patch["sku"] != sku.sku and _sku_code_exists(patch["sku"], exclude_sku_id=sku.id):
        raise DuplicateSkuError("SKU code already exists", details={"sku": patch["sku"]})

    if "barcode" in patch and barcode_exists(patch["barcode"], exclude_sku_id=sku.id):
        raise DuplicateBarcodeError("Barcode already exists", details={"barcode": patch["barcode"]})

    if not patch:
        return sku

    for key, value in patch.items():
        setattr(sku, key, value)

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise_for_integrity_error(exc)
    return sku


def find_by_barcode(barcode) -> dict | None:
    """Exact, case-insensitive barcode lookup for scanning at the till."""
    if not isinstance(barcode, str):
        return None
    trimmed = barcode.strip()
    if not trimmed:
        return None

    sku = (
        db.session.query(Sku)
        .filter(func.lower(Sku.barcode) == trimmed.lower())
        .order_by(Sku.id.asc())
        .first()
    )
    if sku is None:
        return None
    return _to_lookup_dict(sku)


def _matches(sku: Sku, needle: str) -> bool:
    if needle in (sku.sku or "").lower() or needle in (sku.barcode or "").lower():
        return True
    if sku.product and needle in (sku.product.name or "").lower():
        return True
    return any(needle in str(v).lower() for v in (sku.attributes or {}).values())


def search_skus(query, limit: int = SEARCH_LIMIT) -> list[dict]:
    """
    Quick lookup by SKU code, barcode, product name or attribute value.

    Empty queries return nothing instead of scanning the table.
    """
    if not isinstance(query, str):
        return []
    trimmed = query.strip()
    if not trimmed:
        return []

    needle = trimmed.lower()
    pattern = f"%{_escape_like(trimmed)}%"

    # Coarse SQL filter; the JSON text cast also matches attribute keys, so
    # candidates are re-checked against attribute values below.
    candidates = (
        db.session.query(Sku)
        .outerjoin(Product, Product.id == Sku.product_id)
        .filter(
            or_(
                Sku.sku.ilike(pattern, escape="\\"),
                Sku.barcode.ilike(pattern, escape="\\"),
                Product.name.ilike(pattern, escape="\\"),
                cast(Sku.attributes, String).ilike(pattern, escape="\\"),
            )
        )
        .order_by(Sku.sku.asc())
    )

    results: list[dict] = []
    for sku in candidates:
        if not _matches(sku, needle):
            continue
        results.append(_to_lookup_dict(sku))
        if len(results) >= limit:
            break
    return results
