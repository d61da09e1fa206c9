# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

Reads are open; writes require a bearer token. Every successful write
refreshes the dashboard snapshot (a refresh failure is logged, not raised).
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import products_service
from ..services.dashboard_service import refresh_quietly
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/distinct")
def distinct_values():
    """
    Distinct values of one product field.

    Query params:
    - field: name | size | gsm | sku | productId (required)
    - filterField / filterValue: optional equality filter
    """
    field = request.args.get("field")
    if not field:
        return jsonify({"error": "field required"}), 400

    try:
        values = products_service.distinct_values(
            field,
            request.args.get("filterField"),
            request.args.get("filterValue"),
        )
        return jsonify({"values": values}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@products_bp.get("")
def list_products():
    products = products_service.list_products()
    return jsonify([p.to_dict() for p in products]), 200


@products_bp.post("")
@require_auth
def upsert_product_route():
    """Create a product, or add the given quantity to the matching SKU/code."""
    payload = request.get_json(silent=True) or {}
    try:
        product, created = products_service.upsert_product(payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    refresh_quietly("product upsert")
    return jsonify(product.to_dict()), 201 if created else 200


@products_bp.post("/bulk")
@require_auth
def bulk_upsert_route():
    """Import a list of products (body is a list, or {"items": [...]})."""
    payload = request.get_json(silent=True)
    rows = payload if isinstance(payload, list) else (payload or {}).get("items")
    if not isinstance(rows, list) or not rows:
        return jsonify({"error": "items array required"}), 400

    result = products_service.bulk_upsert(rows)
    if result["inserted"] or result["updated"]:
        refresh_quietly("bulk product import")
    return jsonify(result), 200


@products_bp.put("/<identifier>")
@require_auth
def update_product_route(identifier: str):
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.update_product(identifier, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    if product is None:
        return jsonify({"error": "Product not found"}), 404

    refresh_quietly("product update")
    return jsonify(product.to_dict()), 200


@products_bp.patch("/<identifier>/adjust-stock")
@require_auth
def adjust_stock_route(identifier: str):
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.adjust_stock(identifier, payload.get("amount"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    if product is None:
        return jsonify({"error": "Product not found"}), 404

    current_app.logger.info(
        "Stock adjusted for %s by %s (now %s)", product.product_code, payload.get("amount"), product.quantity
    )
    refresh_quietly("stock adjustment")
    return jsonify(product.to_dict()), 200


@products_bp.delete("/<identifier>")
@require_auth
def delete_product_route(identifier: str):
    if not products_service.delete_product(identifier):
        return jsonify({"error": "Product not found"}), 404

    refresh_quietly("product delete")
    return jsonify({"message": "Product deleted successfully"}), 200
