from __future__ import annotations

from ..extensions import db
from riom.time_utils import to_utc_z


GLOBAL_SETTINGS_ID = "global"


class AppSettings(db.Model):
    """
    Global store settings (single row, id="global").

    Created lazily by services.settings_service.get_settings().
    """
    __tablename__ = "app_settings"

    id = db.Column(db.String(32), primary_key=True, default=GLOBAL_SETTINGS_ID)

    default_reorder_threshold = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="INR")

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "default_reorder_threshold": self.default_reorder_threshold,
            "currency": self.currency,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
