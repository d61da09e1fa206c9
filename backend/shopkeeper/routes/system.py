"""
System endpoints: index, health check, and uploaded files.
"""

import time
from flask import Blueprint, current_app, jsonify, send_from_directory
from sqlalchemy import text

from ..extensions import db
from ..services.consistency import ConsistencyStrategy
from ..services.settings_service import upload_dir
from shopkeeper.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


@system_bp.get("/")
def index():
    return jsonify({
        "message": "Shopkeeper API",
        "endpoints": {
            "health": "/api/health",
            "auth": "/api/auth",
            "products": "/api/products",
            "sales": "/api/sales",
            "purchases": "/api/purchases",
            "dashboard": "/api/dashboard",
            "reports": "/api/reports",
            "settings": "/api/settings",
        },
    }), 200


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        topology = ConsistencyStrategy.from_app(current_app).topology()
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": {
                "topology": topology.topology,
                "transactions_supported": topology.supports_transactions,
                "transactions_enabled": bool(current_app.config.get("DB_TRANSACTIONS")),
            },
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    """200 when the database answers, 503 otherwise."""
    database_health = check_database_health()
    status = database_health["status"]
    return {
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, 200 if status == "healthy" else 503


@system_bp.get("/uploads/<path:filename>")
def uploaded_file(filename: str):
    return send_from_directory(upload_dir(), filename)
