# Overview: Flask API routes for purchase operations; parses input and returns JSON responses.

"""Purchases API routes (stock received from suppliers)"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..models import Purchase
from ..services import products_service
from ..services.transaction_service import PurchaseRequest, TransactionError, get_processor
from ..validation import ValidationError
from ..decorators import require_auth
from .sales import transaction_error_response


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("/products")
def purchasable_products_route():
    products = products_service.list_products()
    return jsonify([p.to_dict() for p in products]), 200


@purchases_bp.get("")
def list_purchases_route():
    purchases = db.session.query(Purchase).order_by(Purchase.created_at.desc(), Purchase.id.desc()).all()
    return jsonify([p.to_dict() for p in purchases]), 200


@purchases_bp.post("")
@require_auth
def create_purchase_route():
    """
    Record a purchase and add its items to stock.

    201 with {purchase, updatedProducts, dashboard?}; 400 bad payload, 404 unknown product.
    """
    try:
        purchase_request = PurchaseRequest.from_payload(request.get_json(silent=True))
        result = get_processor().process_purchase(purchase_request)
        return jsonify(result.to_dict("purchase")), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TransactionError as e:
        if e.status_code >= 500:
            current_app.logger.error("Purchase failed: %s", e)
        return transaction_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Server error"}), 500
