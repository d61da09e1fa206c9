from __future__ import annotations

import os
import time

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..extensions import db
from ..models import ShopSetting
from ..models.settings import SETTINGS_ID
from ..validation import ValidationError, normalize_string


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError, ValidationError):
    pass


def get_settings() -> ShopSetting:
    """The singleton row, created with defaults on first read."""
    settings = db.session.get(ShopSetting, SETTINGS_ID)
    if settings is None:
        settings = ShopSetting(id=SETTINGS_ID)
        db.session.add(settings)
        db.session.commit()
    return settings


def update_settings(payload: dict) -> ShopSetting:
    payload = payload if isinstance(payload, dict) else {}
    shop_name = normalize_string(payload.get("shopName"))
    address = normalize_string(payload.get("address"))
    contact = normalize_string(payload.get("contact"))

    if not shop_name or not address or not contact:
        raise SettingsValidationError("Missing required fields: shopName, address, contact")

    settings = get_settings()
    settings.shop_name = shop_name
    settings.address = address
    settings.contact = contact
    db.session.commit()
    return settings


def upload_dir() -> str:
    path = current_app.config["UPLOAD_DIR"]
    os.makedirs(path, exist_ok=True)
    return path


def save_logo(upload: FileStorage | None) -> ShopSetting:
    """
    Store an uploaded logo as logo-<epoch ms><ext> and point the settings at it.

    The stored value is the absolute URL (API_BASE_URL + /uploads/<name>).
    """
    if upload is None or not upload.filename:
        raise SettingsValidationError("No file uploaded")

    _, ext = os.path.splitext(secure_filename(upload.filename))
    filename = f"logo-{int(time.time() * 1000)}{ext.lower()}"
    upload.save(os.path.join(upload_dir(), filename))

    base_url = str(current_app.config.get("API_BASE_URL") or "").rstrip("/")
    settings = get_settings()
    settings.shop_logo = f"{base_url}/uploads/{filename}"
    db.session.commit()

    current_app.logger.info("Stored shop logo %s", filename)
    return settings
