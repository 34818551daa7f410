# Overview: Service-layer operations for SKU barcodes; encapsulates business logic and database work.

"""
Barcode allocation.

Auto-generated barcodes are plain numeric strings. The first one is
START_BARCODE; every later one is the highest numeric barcode in use plus one.
Non-numeric (user supplied) barcodes are ignored when finding that maximum.

UNIQUENESS: skus.barcode carries a unique constraint. allocate_barcode()
checks candidates before use and steps forward on a collision; the constraint
remains the final guard against two concurrent creators picking the same value.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Sku
from ..errors import BarcodeGenerationError


START_BARCODE = 10000001
MAX_ATTEMPTS = 5


def barcode_exists(barcode: str, exclude_sku_id: int | None = None) -> bool:
    q = db.session.query(Sku.id).filter(Sku.barcode == barcode)
    if exclude_sku_id is not None:
        q = q.filter(Sku.id != exclude_sku_id)
    return db.session.query(q.exists()).scalar()


def _last_numeric_barcode() -> int | None:
    # Longest first, then lexical: for digit-only strings this is numeric order.
    rows = (
        db.session.query(Sku.barcode)
        .filter(Sku.barcode.isnot(None))
        .order_by(func.length(Sku.barcode).desc(), Sku.barcode.desc())
        .yield_per(100)
    )
    for (barcode,) in rows:
        if barcode and barcode.isdigit():
            return int(barcode)
    return None


def generate_barcode() -> str:
    last_value = _last_numeric_barcode()
    if not last_value:
        return str(START_BARCODE)
    return str(last_value + 1)


def allocate_barcode() -> str:
    """
    Return an unused barcode.

    Raises BarcodeGenerationError after MAX_ATTEMPTS collisions.
    """
    candidate = int(generate_barcode())
    for _ in range(MAX_ATTEMPTS):
        value = str(candidate)
        if not barcode_exists(value):
            return value
        candidate += 1
    raise BarcodeGenerationError("Failed to generate unique barcode")
