# Overview: Service-layer operations for global settings; encapsulates business logic and database work.

"""
Settings provider.

The default reorder threshold is read here and handed to callers as a plain
value; stock and SKU services accept it as a parameter so they can be used
(and tested) with a fixed threshold.
"""

from __future__ import annotations

from ..extensions import db
from ..models import AppSettings, GLOBAL_SETTINGS_ID
from ..errors import InvalidInputError


def _get_row() -> AppSettings | None:
    return db.session.get(AppSettings, GLOBAL_SETTINGS_ID)


def init_settings_if_missing() -> AppSettings:
    """Create the global settings row with defaults. Idempotent."""
    settings = _get_row()
    if settings:
        return settings

    settings = AppSettings(id=GLOBAL_SETTINGS_ID, default_reorder_threshold=0, currency="INR")
    db.session.add(settings)
    db.session.flush()
    return settings


def get_settings() -> AppSettings:
    settings = _get_row()
    if settings is None:
        settings = init_settings_if_missing()
        db.session.commit()
    return settings


def get_default_reorder_threshold() -> int:
    settings = _get_row()
    if settings is None:
        return 0
    return int(settings.default_reorder_threshold or 0)


def _sanitize_patch(data: dict) -> dict:
    update: dict = {}

    if data.get("default_reorder_threshold") is not None:
        value = data["default_reorder_threshold"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidInputError("default_reorder_threshold must be a non-negative integer")
        update["default_reorder_threshold"] = value

    if data.get("currency") is not None:
        currency = data["currency"]
        if not isinstance(currency, str) or not currency.strip():
            raise InvalidInputError("currency must be a non-empty string")
        currency = currency.strip().upper()
        if len(currency) != 3:
            raise InvalidInputError("currency must be a 3-letter code")
        update["currency"] = currency

    return update


def update_settings(data: dict, user_id: int | None = None) -> AppSettings:
    if not isinstance(data, dict):
        raise InvalidInputError("Invalid JSON payload")

    update = _sanitize_patch(data)
    settings = init_settings_if_missing()
    if not update:
        db.session.commit()
        return settings

    for key, value in update.items():
        setattr(settings, key, value)
    settings.updated_by_user_id = user_id

    db.session.commit()
    return settings
