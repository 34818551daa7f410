from __future__ import annotations

from ..extensions import db
from riom.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    A product groups one or more sellable SKUs (variants). Stock lives on the
    SKU rows; ``total_stock`` is an aggregate kept in step by the stock
    service inside the same unit of work as every adjustment.

    Products are never hard-deleted; ``is_active`` is the soft-disable flag.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=True, index=True)

    # Authoritative storage in cents (frontend may only format for display)
    base_price_cents = db.Column(db.Integer, nullable=False)

    min_stock = db.Column(db.Integer, nullable=False, default=0)
    sku_count = db.Column(db.Integer, nullable=False, default=0)
    total_stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} category={self.category!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "base_price_cents": self.base_price_cents,
            "min_stock": self.min_stock,
            "sku_count": self.sku_count,
            "total_stock": self.total_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Sku(db.Model):
    """
    Stock keeping unit: one sellable variant of a Product.

    STOCK INVARIANT: stock >= 0 at all times. The column is only written by
    services.stock_service; every write appends one StockHistory row in the
    same transaction.

    CONCURRENCY: version_id is an optimistic lock. Two transactions that read
    the same stock value cannot both commit an update; the loser gets a
    StaleDataError and is retried by services.concurrency.run_with_retry.
    """
    __tablename__ = "skus"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_skus_sku"),
        db.UniqueConstraint("barcode", name="uq_skus_barcode"),
        db.CheckConstraint("stock >= 0", name="ck_skus_stock_non_negative"),
        db.CheckConstraint("price_cents >= 0", name="ck_skus_price_non_negative"),
        db.Index("ix_skus_stock", "stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Human code, e.g. "TSHIRT-RED-M"
    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=False)

    # Flat string -> string map (color, size, ...)
    attributes = db.Column(db.JSON, nullable=False, default=dict)

    price_cents = db.Column(db.Integer, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)

    # NULL means "use the global default from settings"
    reorder_threshold = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("skus", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sku id={self.id} sku={self.sku!r} stock={self.stock} product_id={self.product_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "attributes": dict(self.attributes or {}),
            "price_cents": self.price_cents,
            "stock": self.stock,
            "reorder_threshold": self.reorder_threshold,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
