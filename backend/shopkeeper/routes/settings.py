from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_auth, require_role
from ..services import settings_service
from ..services.settings_service import SettingsValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings():
    try:
        return jsonify(settings_service.get_settings().to_dict()), 200
    except Exception:
        current_app.logger.exception("Failed to load settings")
        return jsonify({"error": "Server error"}), 500


@settings_bp.put("")
@require_auth
@require_role("admin")
def update_settings():
    try:
        settings = settings_service.update_settings(request.get_json(silent=True) or {})
        return jsonify(settings.to_dict()), 200
    except SettingsValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Server error"}), 500


@settings_bp.post("/logo")
@require_auth
@require_role("admin")
def upload_logo():
    try:
        settings = settings_service.save_logo(request.files.get("logo"))
        return jsonify({"shopLogo": settings.shop_logo, "settings": settings.to_dict()}), 200
    except SettingsValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Logo upload failed")
        return jsonify({"error": "Server error"}), 500
