# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Sale
from ..services import products_service
from ..services.transaction_service import SaleRequest, TransactionError, get_processor
from ..validation import ValidationError
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def transaction_error_response(exc: TransactionError):
    body = {"error": str(exc)}
    if exc.details:
        body["details"] = exc.details
    return jsonify(body), exc.status_code


@sales_bp.get("/products")
def sellable_products_route():
    """Products with stock on hand."""
    products = products_service.list_products(in_stock_only=True)
    return jsonify([p.to_dict() for p in products]), 200


@sales_bp.get("")
def list_sales_route():
    sales = db.session.query(Sale).order_by(Sale.created_at.desc(), Sale.id.desc()).all()
    return jsonify([s.to_dict() for s in sales]), 200


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale and take its items out of stock.

    201 with {sale, updatedProducts, dashboard?}.
    400 bad payload, 404 unknown product, 409 insufficient stock.
    """
    try:
        sale_request = SaleRequest.from_payload(request.get_json(silent=True))
        result = get_processor().process_sale(sale_request)
        return jsonify(result.to_dict("sale")), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TransactionError as e:
        if e.status_code >= 500:
            current_app.logger.error("Sale failed: %s", e)
        return transaction_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Server error"}), 500
