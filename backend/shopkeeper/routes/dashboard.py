from flask import Blueprint, jsonify, current_app

from ..services.dashboard_service import DashboardRecomputeError, get_dashboard
from ..decorators import require_auth


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
def dashboard_route():
    try:
        return jsonify(get_dashboard().snapshot().to_dict()), 200
    except DashboardRecomputeError:
        current_app.logger.exception("Failed to load dashboard stats")
        return jsonify({"error": "Server error"}), 500


@dashboard_bp.post("/recalculate")
@require_auth
def recalculate_route():
    try:
        return jsonify(get_dashboard().recompute().to_dict()), 200
    except DashboardRecomputeError:
        current_app.logger.exception("Failed to recalculate dashboard stats")
        return jsonify({"error": "Server error"}), 500
