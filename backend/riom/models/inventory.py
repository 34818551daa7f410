from __future__ import annotations

from ..extensions import db
from riom.time_utils import to_utc_z


class StockHistory(db.Model):
    """
    Append-only stock ledger.

    One row per successful stock adjustment, written in the same transaction
    as the SKU update it records.

    INVARIANT: new_stock == previous_stock + change.
    Rows are never updated or deleted.

    sku_id / product_id / reference_order_id / changed_by_user_id are audit
    references only; the ledger does not own those records.
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.Index("ix_stock_history_sku_created", "sku_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    change = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=False)

    reference_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # "metadata" is reserved on declarative classes
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<StockHistory id={self.id} sku_id={self.sku_id} "
            f"{self.previous_stock}->{self.new_stock} reason={self.reason!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku_id": self.sku_id,
            "product_id": self.product_id,
            "change": self.change,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reason": self.reason,
            "reference_order_id": self.reference_order_id,
            "changed_by_user_id": self.changed_by_user_id,
            "metadata": self.metadata_json,
            "created_at": to_utc_z(self.created_at),
        }
