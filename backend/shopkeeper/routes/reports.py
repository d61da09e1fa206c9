from flask import Blueprint, jsonify, request, current_app

from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("")
def report_summary():
    try:
        report = reporting_service.build_report(
            start=request.args.get("startDate"),
            end=request.args.get("endDate"),
        )
        return jsonify(report), 200
    except Exception:
        current_app.logger.exception("Failed to build reports payload")
        return jsonify({"error": "Failed to load reports"}), 500


@reports_bp.get("/monthly-sales")
def monthly_sales_report():
    try:
        return jsonify({"data": reporting_service.monthly_sales()}), 200
    except Exception:
        current_app.logger.exception("Failed to get monthly sales")
        return jsonify({"error": "Failed to load monthly sales"}), 500
