# backend/shopkeeper/services/products_service.py
"""
Products Service (product repository)

Lookup and persistence of Product rows, plus the inventory CRUD used by the
products screen.

The sale/purchase batch path only uses find_by_identifier() and save(), and
always passes the batch's UnitOfWork so the writes land in its scope.
"""
from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..models.inventory import DEFAULT_REORDER_POINT
from ..money import to_cents
from ..validation import (
    ConflictError,
    ValidationError,
    check_quantity,
    normalize_code,
    normalize_string,
    parse_integer,
)
from .concurrency import lock_for_update
from .consistency import DirectUnitOfWork, UnitOfWork


# Fields the distinct-values endpoint may group by (wire name -> column)
DISTINCT_FIELDS = {
    "name": Product.name,
    "size": Product.size,
    "gsm": Product.gsm,
    "sku": Product.sku,
    "productId": Product.product_code,
}


def find_by_identifier(uow: UnitOfWork, identifier, *, for_update: bool = False) -> Product | None:
    """
    Resolve a product by product code / SKU, then by internal id.

    Codes are compared trimmed and uppercased. Only an all-digit identifier
    is tried as an internal id.
    """
    trimmed = normalize_string(identifier)
    if not trimmed:
        return None

    code = trimmed.upper()
    query = uow.session.query(Product).filter(or_(Product.product_code == code, Product.sku == code))
    if for_update:
        query = lock_for_update(query)
    product = query.first()
    if product is not None:
        return product

    if trimmed.isdigit():
        query = uow.session.query(Product).filter(Product.id == int(trimmed))
        if for_update:
            query = lock_for_update(query)
        return query.first()

    return None


def save(uow: UnitOfWork, product: Product) -> Product:
    """Persist mutated fields within the unit of work's scope."""
    uow.add(product)
    uow.checkpoint()
    return product


def list_products(*, in_stock_only: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if in_stock_only:
        query = query.filter(Product.quantity > 0)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def distinct_values(field: str, filter_field: str | None = None, filter_value: str | None = None) -> list[str]:
    """
    Distinct non-blank values of one product field, for filter menus.

    Values sort numerically when every value is a number (gsm, sizes),
    alphabetically otherwise.
    """
    column = DISTINCT_FIELDS.get(field)
    if column is None:
        raise ValidationError(f"field must be one of: {', '.join(sorted(DISTINCT_FIELDS))}")

    query = db.session.query(column).distinct()
    if filter_field and filter_value:
        filter_column = DISTINCT_FIELDS.get(filter_field)
        if filter_column is None:
            raise ValidationError(f"filterField must be one of: {', '.join(sorted(DISTINCT_FIELDS))}")
        query = query.filter(filter_column == filter_value)

    values = sorted({normalize_string(row[0]) for row in query.all()} - {""})

    def _is_number(value: str) -> bool:
        try:
            float(value)
        except ValueError:
            return False
        return True

    if values and all(_is_number(v) for v in values):
        values.sort(key=float)
    return values


def _upsert(uow: UnitOfWork, raw: dict, *, increment_quantity: bool) -> tuple[Product, bool]:
    if not isinstance(raw, dict):
        raise ValidationError("product must be an object")

    name = normalize_string(raw.get("name"))
    sku = normalize_code(raw.get("sku") if raw.get("sku") is not None else raw.get("productId"))
    product_code = normalize_code(raw.get("productId") if raw.get("productId") is not None else raw.get("sku")) or sku

    if not name:
        raise ValidationError("name required")
    if not sku:
        raise ValidationError("sku required")

    quantity = check_quantity(parse_integer(raw.get("quantity"), 0))
    price_cents = to_cents(raw.get("price"), 0, field="price")
    reorder_point = check_quantity(
        parse_integer(raw.get("reorderPoint"), DEFAULT_REORDER_POINT) or DEFAULT_REORDER_POINT, "reorderPoint"
    )

    existing = (
        uow.session.query(Product)
        .filter(or_(Product.sku == sku, Product.product_code == product_code))
        .first()
    )

    if existing is not None:
        if increment_quantity:
            existing.quantity = (existing.quantity or 0) + quantity
        elif raw.get("quantity") is not None:
            existing.quantity = quantity

        existing.name = name
        existing.sku = sku
        existing.product_code = product_code
        existing.price_cents = price_cents
        existing.reorder_point = reorder_point
        if "size" in raw:
            existing.size = normalize_string(raw.get("size"))
        if "gsm" in raw:
            existing.gsm = normalize_string(raw.get("gsm"))
        if "image" in raw:
            existing.image = raw.get("image")

        save(uow, existing)
        return existing, False

    product = Product(
        name=name,
        sku=sku,
        product_code=product_code,
        price_cents=price_cents,
        quantity=quantity,
        reorder_point=reorder_point,
        size=normalize_string(raw.get("size")),
        gsm=normalize_string(raw.get("gsm")),
        image=raw.get("image"),
    )
    save(uow, product)
    return product, True


def upsert_product(raw: dict) -> tuple[Product, bool]:
    """
    Add a product, or add stock to the one with the same SKU / code.

    Returns (product, created).
    """
    uow = DirectUnitOfWork()
    try:
        return _upsert(uow, raw, increment_quantity=True)
    except IntegrityError as exc:
        uow.rollback()
        raise ConflictError("Product code or SKU already in use") from exc


def bulk_upsert(rows: list) -> dict:
    """
    Import many products; quantities replace rather than increment.

    Row failures are collected, they do not stop the import.
    """
    uow = DirectUnitOfWork()
    result = {"inserted": 0, "updated": 0, "errors": []}

    for index, raw in enumerate(rows):
        try:
            _, created = _upsert(uow, raw, increment_quantity=False)
        except (ValidationError, IntegrityError) as exc:
            uow.rollback()
            message = str(exc) if isinstance(exc, ValidationError) else "Product code or SKU already in use"
            result["errors"].append({"index": index, "message": message})
            continue
        if created:
            result["inserted"] += 1
        else:
            result["updated"] += 1

    result["hasErrors"] = bool(result["errors"])
    return result


def update_product(identifier, payload: dict) -> Product | None:
    uow = DirectUnitOfWork()
    product = find_by_identifier(uow, identifier, for_update=True)
    if product is None:
        return None

    if payload.get("name"):
        product.name = normalize_string(payload["name"])

    if payload.get("sku") or payload.get("productId"):
        sku = normalize_code(payload.get("sku") or payload.get("productId"))
        if not sku:
            raise ValidationError("sku required")
        product.sku = sku
        product.product_code = normalize_code(payload.get("productId") or sku) or sku

    if payload.get("price") is not None:
        product.price_cents = to_cents(payload["price"], product.price_cents, field="price")
    if payload.get("quantity") is not None:
        product.quantity = check_quantity(parse_integer(payload["quantity"], product.quantity))
    if payload.get("reorderPoint") is not None:
        product.reorder_point = check_quantity(
            parse_integer(payload["reorderPoint"], product.reorder_point), "reorderPoint"
        )

    if "size" in payload:
        product.size = normalize_string(payload.get("size"))
    if "gsm" in payload:
        product.gsm = normalize_string(payload.get("gsm"))
    if "image" in payload:
        product.image = payload.get("image")

    try:
        return save(uow, product)
    except IntegrityError as exc:
        uow.rollback()
        raise ConflictError("Product code or SKU already in use") from exc


def adjust_stock(identifier, amount) -> Product | None:
    """Apply a signed quantity delta (manual stock correction)."""
    delta = check_quantity(parse_integer(amount, 0), "amount")
    uow = DirectUnitOfWork()
    product = find_by_identifier(uow, identifier, for_update=True)
    if product is None:
        return None
    product.quantity = (product.quantity or 0) + delta
    return save(uow, product)


def delete_product(identifier) -> bool:
    uow = DirectUnitOfWork()
    product = find_by_identifier(uow, identifier)
    if product is None:
        return False
    uow.session.delete(product)
    uow.commit()
    return True
