from __future__ import annotations

from ..extensions import db
from riom.time_utils import to_utc_z


ORDER_STATUSES = ("pending", "completed", "cancelled")


class Order(db.Model):
    """
    Completed sale.

    Line items are value snapshots (price, code, attributes at time of sale)
    so historical orders stay accurate when SKUs change later.

    INVARIANTS:
    - sub_total_cents == sum(line.line_total_cents)
    - total_cents == sub_total_cents + tax_cents
    - the order row, its lines and their stock deductions commit together
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_customer_phone", "customer_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-scannable number, e.g. "ORD-20260102153045-1A2B3C4D"
    order_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    # All amounts in cents
    sub_total_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.line_number",
        cascade="all, delete-orphan",
    )

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
            },
            "items": [line.to_dict() for line in self.lines],
            "total_items": self.total_items,
            "sub_total_cents": self.sub_total_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "created_by_user_id": self.created_by_user_id,
            "metadata": self.metadata_json,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    """Snapshot of one SKU/quantity on an order."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_lines_order_line"),
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    attributes = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "sku_id": self.sku_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "attributes": self.attributes,
        }
