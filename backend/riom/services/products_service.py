# Overview: Service-layer operations for products; encapsulates business logic and database work.

"""
Products Service

Products are never hard-deleted: deactivate_product() flips is_active so
historical orders and ledger rows keep valid references.

sku_count and total_stock are aggregates. sku_count is bumped by
sku_service.create_sku; total_stock is recomputed by stock_service on every
adjustment. Neither is client-writable.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..errors import InvalidInputError, ProductNotFoundError
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .concurrency import run_with_retry, unit_of_work
from .settings_service import get_default_reorder_threshold
from .sku_service import create_sku, prepare_sku_patch, raise_for_integrity_error

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category", "base_price_cents", "min_stock", "is_active"},
    required_on_create={"name", "category", "base_price_cents"},
)


def require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(details={"product_id": product_id})
    return product


def get_product(product_id: int) -> Product:
    return require_product(product_id)


def list_products(
    page: int | None = 1,
    per_page: int | None = 10,
    name: str | None = None,
    category: str | None = None,
    is_active: bool | None = None,
) -> dict:
    """
    Product listing with optional filters, newest first.

    name/category are case-insensitive substring filters.
    """
    per_page = min(per_page or 10, MAX_PAGE_SIZE)
    page = max(page or 1, 1)

    base_query = db.session.query(Product)
    if name:
        base_query = base_query.filter(Product.name.ilike(f"%{name}%"))
    if category:
        base_query = base_query.filter(Product.category.ilike(f"%{category}%"))
    if is_active is not None:
        base_query = base_query.filter(Product.is_active == is_active)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = (
        base_query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(payload: dict, skus: list | None = None, actor_user_id: int | None = None) -> Product:
    """
    Create a product, optionally with its SKUs in the same unit of work.

    Each entry of `skus` is a SKU create payload without product_id. If any
    SKU fails validation (duplicate code/barcode, bad price...) the product is
    not created either.
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    if skus is not None and not isinstance(skus, list):
        raise InvalidInputError("skus must be a list")

    sku_payloads = []
    if skus:
        default_threshold = get_default_reorder_threshold()
        for index, item in enumerate(skus):
            if not isinstance(item, dict):
                raise InvalidInputError("Invalid SKU payload", details={"index": index})
            # product_id is not known yet; validate with a placeholder
            prepare_sku_patch({**item, "product_id": 0}, default_threshold=default_threshold)
            sku_payloads.append(item)

    def _op():
        with unit_of_work():
            product = Product(sku_count=0, total_stock=0)
            for key, value in patch.items():
                setattr(product, key, value)
            if product.min_stock is None:
                product.min_stock = 0
            db.session.add(product)
            db.session.flush()

            for sku_payload in sku_payloads:
                create_sku({**sku_payload, "product_id": product.id}, actor_user_id=actor_user_id, commit=False)
            return product

    try:
        product = run_with_retry(_op)
    except IntegrityError as exc:
        raise_for_integrity_error(exc)

    logger.info("Product created product_id=%s name=%r skus=%d", product.id, product.name, len(sku_payloads))
    return product


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    product = require_product(product_id)
    for key, value in patch.items():
        setattr(product, key, value)

    db.session.commit()
    return product


def deactivate_product(product_id: int) -> Product:
    """Soft-delete: preserve IDs and historical references."""
    product = require_product(product_id)
    if product.is_active:
        product.is_active = False
        logger.info("Product deactivated product_id=%s", product.id)
    db.session.commit()
    return product
