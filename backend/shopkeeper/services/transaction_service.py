# Overview: Sale/purchase batch processing; validates stock, mutates products, stores the record.

"""
Transaction Processor

Turns one batch of line items into one stored Sale or Purchase plus the
product quantity/price changes it implies.

FLOW (per batch):
1. Request is parsed and validated (ValidationError, nothing touched)
2. Preflight: every identifier is resolved; for sales the quantity asked
   for each product (duplicates summed) is checked against stock
3. Items are applied strictly in input order: resolve, check, mutate, save
4. The parent record is stored with the line-item snapshots
5. Dashboard: sales bump the counters, then a full recompute runs

Steps 2-4 run inside the ConsistencyStrategy's unit of work.

Duplicate identifiers are not merged: each line is applied on its own.
subtotal/tax/total are stored as supplied; a subtotal that does not match
the line totals is only logged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Purchase, Sale
from ..models.purchases import UNKNOWN_SUPPLIER
from ..money import to_cents
from ..validation import ValidationError, check_quantity, normalize_string, parse_integer
from . import products_service
from .consistency import ConsistencyStrategy, UnitOfWork
from .dashboard_service import (
    EXTENSION_KEY as DASHBOARD_EXTENSION_KEY,
    DashboardAggregator,
    DashboardRecomputeError,
    DashboardSnapshot,
)
from shopkeeper.time_utils import parse_iso_datetime, utcnow


EXTENSION_KEY = "shopkeeper.transactions"


class TransactionError(Exception):
    """Raised when a batch cannot be applied; nothing is reported per item."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProductNotFoundError(TransactionError):
    status_code = 404


class InsufficientStockError(TransactionError):
    status_code = 409


class PersistenceError(TransactionError):
    status_code = 500


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineItemRequest:
    index: int
    identifier: str
    quantity: int
    price_cents: int = 0
    price_per_quantity_cents: int = 0


def _parse_items(raw_items: Any) -> list[LineItemRequest]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items array required")

    items = []
    for index, raw in enumerate(raw_items):
        raw = raw if isinstance(raw, dict) else {}
        identifier = normalize_string(raw.get("productId"))
        if not identifier:
            raise ValidationError(f"items[{index}].productId required")

        quantity = parse_integer(raw.get("quantity"), 0)
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be greater than 0")
        check_quantity(quantity, f"items[{index}].quantity")

        items.append(
            LineItemRequest(
                index=index,
                identifier=identifier,
                quantity=quantity,
                price_cents=max(to_cents(raw.get("price"), 0, field=f"items[{index}].price"), 0),
                price_per_quantity_cents=max(
                    to_cents(raw.get("pricePerQuantity"), 0, field=f"items[{index}].pricePerQuantity"), 0
                ),
            )
        )
    return items


def _totals(payload: dict) -> dict:
    return {
        f"{key}_cents": to_cents(payload.get(key), 0, field=key)
        for key in ("subtotal", "tax", "total")
    }


def _require_bill_id(payload: dict) -> str:
    bill_id = normalize_string(payload.get("billId"))
    if not bill_id:
        raise ValidationError("billId required")
    return bill_id


@dataclass(frozen=True)
class SaleRequest:
    bill_id: str
    items: list[LineItemRequest]
    customer_name: str = ""
    subtotal_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0
    invoice_date: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict | None) -> "SaleRequest":
        payload = payload if isinstance(payload, dict) else {}
        bill_id = _require_bill_id(payload)
        items = _parse_items(payload.get("items"))

        invoice_date = None
        provided = payload.get("date")
        if provided is None:
            provided = payload.get("invoiceDate")
        if provided:
            try:
                invoice_date = parse_iso_datetime(provided)
            except ValueError:
                # An unreadable date falls back to "now"
                invoice_date = None

        return cls(
            bill_id=bill_id,
            items=items,
            customer_name=normalize_string(payload.get("customerName")),
            **_totals(payload),
            invoice_date=invoice_date,
        )


@dataclass(frozen=True)
class PurchaseRequest:
    bill_id: str
    items: list[LineItemRequest]
    supplier_name: str = UNKNOWN_SUPPLIER
    subtotal_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0

    @classmethod
    def from_payload(cls, payload: dict | None) -> "PurchaseRequest":
        payload = payload if isinstance(payload, dict) else {}
        bill_id = _require_bill_id(payload)
        items = _parse_items(payload.get("items"))
        return cls(
            bill_id=bill_id,
            items=items,
            supplier_name=normalize_string(payload.get("supplierName")) or UNKNOWN_SUPPLIER,
            **_totals(payload),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class BatchResult:
    record: Sale | Purchase
    updated_products: list[Product]
    dashboard: DashboardSnapshot | None = None
    replayed: bool = False

    def to_dict(self, record_key: str) -> dict:
        body = {
            record_key: self.record.to_dict(),
            "updatedProducts": [p.to_dict() for p in self.updated_products],
        }
        if self.dashboard is not None:
            body["dashboard"] = self.dashboard.to_dict()
        return body


@dataclass
class BillReplayGuard:
    """
    Detects a record for this bill id that appeared during a refused
    transactional attempt, so the fallback returns it instead of re-applying.
    """
    model: type
    bill_id: str
    known_ids: set[int] = field(default_factory=set)

    def _ids(self) -> set[int]:
        rows = db.session.query(self.model.id).filter(self.model.bill_id == self.bill_id).all()
        return {row[0] for row in rows}

    def arm(self) -> None:
        self.known_ids = self._ids()

    def recover(self) -> BatchResult | None:
        new_ids = self._ids() - self.known_ids
        if not new_ids:
            return None
        record = db.session.get(self.model, max(new_ids))
        products = []
        for item in record.items or []:
            product = db.session.get(Product, int(item["product_id"]))
            if product is not None:
                products.append(product)
        return BatchResult(record=record, updated_products=products, replayed=True)


# ---------------------------------------------------------------------------
# Line snapshots
# ---------------------------------------------------------------------------

def _sale_line(product: Product, item: LineItemRequest, price_cents: int) -> dict:
    per_quantity = item.price_per_quantity_cents
    unit = per_quantity if per_quantity > 0 else price_cents
    return {
        "product_id": str(product.id),
        "product_code": product.product_code,
        "product_name": product.name,
        "quantity": item.quantity,
        "price_cents": price_cents,
        "price_per_quantity_cents": per_quantity if per_quantity > 0 else price_cents * item.quantity,
        "total_cents": unit * item.quantity,
        "size": normalize_string(product.size),
        "gsm": normalize_string(product.gsm),
    }


def _purchase_line(product: Product, item: LineItemRequest, price_cents: int) -> dict:
    return {
        "product_id": str(product.id),
        "product_code": product.product_code,
        "product_name": product.name,
        "quantity": item.quantity,
        "price_cents": price_cents,
        "total_cents": price_cents * item.quantity,
        "size": normalize_string(product.size),
        "gsm": normalize_string(product.gsm),
    }


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------

class TransactionProcessor:
    def __init__(
        self,
        *,
        strategy: ConsistencyStrategy,
        dashboard: DashboardAggregator,
        refresh_dashboard: bool = True,
    ):
        self.strategy = strategy
        self.dashboard = dashboard
        self.refresh_dashboard = refresh_dashboard

    @classmethod
    def from_app(cls, app: Flask) -> "TransactionProcessor":
        return cls(
            strategy=ConsistencyStrategy.from_app(app),
            dashboard=app.extensions[DASHBOARD_EXTENSION_KEY],
            refresh_dashboard=bool(app.config.get("DASHBOARD_REFRESH_ON_WRITE", True)),
        )

    def init_app(self, app: Flask) -> None:
        app.extensions[EXTENSION_KEY] = self

    # -- shared steps ------------------------------------------------------

    def _resolve(self, uow: UnitOfWork, item: LineItemRequest) -> Product:
        product = products_service.find_by_identifier(uow, item.identifier, for_update=True)
        if product is None:
            raise ProductNotFoundError(
                f"Product not found for id {item.identifier}",
                details={"index": item.index, "productId": item.identifier},
            )
        return product

    def _preflight(self, uow: UnitOfWork, items: list[LineItemRequest], *, check_stock: bool) -> None:
        """Resolve every item and (sales) check summed demand before any write."""
        requested: dict[int, int] = {}
        products: dict[int, Product] = {}
        for item in items:
            product = self._resolve(uow, item)
            products[product.id] = product
            requested[product.id] = requested.get(product.id, 0) + item.quantity

        if not check_stock:
            return

        for product_id, quantity in requested.items():
            product = products[product_id]
            on_hand = product.quantity or 0
            if quantity > on_hand:
                raise InsufficientStockError(
                    f"Insufficient stock for product {product.name}",
                    details={"productId": product.product_code, "requested": quantity, "onHand": on_hand},
                )

    def _warn_on_total_drift(self, label: str, bill_id: str, subtotal_cents: int, lines: list[dict]) -> None:
        line_sum = sum(line["total_cents"] for line in lines)
        if line_sum != subtotal_cents:
            current_app.logger.warning(
                "%s %s stored with subtotal %s cents but line totals sum to %s cents",
                label, bill_id, subtotal_cents, line_sum,
            )

    def _run(self, batch, *, model: type, bill_id: str, label: str) -> tuple[Any, list[Product]] | BatchResult:
        try:
            return self.strategy.run(batch, guard=BillReplayGuard(model, bill_id), label=label)
        except (TransactionError, ValidationError):
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Failed to persist %s %s", label, bill_id)
            raise PersistenceError(f"Failed to save {label}") from exc

    def _after_commit(self, *, sales_delta_cents: int | None, label: str) -> DashboardSnapshot | None:
        if not self.refresh_dashboard:
            return None
        try:
            if sales_delta_cents is not None:
                self.dashboard.increment_counters(total_sales_delta_cents=sales_delta_cents, orders_delta=1)
            return self.dashboard.recompute()
        except DashboardRecomputeError:
            current_app.logger.exception("Failed to recalculate dashboard stats after %s", label)
            return None

    # -- sales -------------------------------------------------------------

    def _apply_sale(self, request: SaleRequest, uow: UnitOfWork) -> tuple[Sale, list[Product]]:
        self._preflight(uow, request.items, check_stock=True)

        updated: list[Product] = []
        lines: list[dict] = []
        for item in request.items:
            product = self._resolve(uow, item)

            on_hand = product.quantity or 0
            if item.quantity > on_hand:
                raise InsufficientStockError(
                    f"Insufficient stock for product {product.name}",
                    details={"index": item.index, "requested": item.quantity, "onHand": on_hand},
                )

            price_cents = item.price_cents if item.price_cents > 0 else (product.price_cents or 0)
            product.quantity = on_hand - item.quantity
            product.price_cents = price_cents
            products_service.save(uow, product)

            updated.append(product)
            lines.append(_sale_line(product, item, price_cents))

        created_at = request.invoice_date or utcnow()
        sale = Sale(
            bill_id=request.bill_id,
            customer_name=request.customer_name,
            subtotal_cents=request.subtotal_cents,
            tax_cents=request.tax_cents,
            total_cents=request.total_cents,
            items=lines,
            created_at=created_at,
            updated_at=created_at,
        )
        uow.add(sale)
        uow.checkpoint()
        return sale, updated

    def process_sale(self, request: SaleRequest) -> BatchResult:
        outcome = self._run(
            lambda uow: self._apply_sale(request, uow),
            model=Sale,
            bill_id=request.bill_id,
            label="sale",
        )
        result = outcome if isinstance(outcome, BatchResult) else BatchResult(*outcome)

        self._warn_on_total_drift("Sale", request.bill_id, request.subtotal_cents, result.record.items)
        current_app.logger.info(
            "Sale %s stored: %s item(s), total %s cents",
            result.record.bill_id, len(result.record.items), result.record.total_cents,
        )

        result.dashboard = self._after_commit(sales_delta_cents=result.record.total_cents, label="sale")
        return result

    # -- purchases ---------------------------------------------------------

    def _apply_purchase(self, request: PurchaseRequest, uow: UnitOfWork) -> tuple[Purchase, list[Product]]:
        self._preflight(uow, request.items, check_stock=False)

        updated: list[Product] = []
        lines: list[dict] = []
        for item in request.items:
            product = self._resolve(uow, item)

            price_cents = item.price_cents if item.price_cents > 0 else (product.price_cents or 0)
            product.quantity = (product.quantity or 0) + item.quantity
            product.price_cents = price_cents
            products_service.save(uow, product)

            updated.append(product)
            lines.append(_purchase_line(product, item, price_cents))

        now = utcnow()
        purchase = Purchase(
            bill_id=request.bill_id,
            supplier_name=request.supplier_name,
            subtotal_cents=request.subtotal_cents,
            tax_cents=request.tax_cents,
            total_cents=request.total_cents,
            items=lines,
            created_at=now,
            updated_at=now,
        )
        uow.add(purchase)
        uow.checkpoint()
        return purchase, updated

    def process_purchase(self, request: PurchaseRequest) -> BatchResult:
        outcome = self._run(
            lambda uow: self._apply_purchase(request, uow),
            model=Purchase,
            bill_id=request.bill_id,
            label="purchase",
        )
        result = outcome if isinstance(outcome, BatchResult) else BatchResult(*outcome)

        self._warn_on_total_drift("Purchase", request.bill_id, request.subtotal_cents, result.record.items)
        current_app.logger.info(
            "Purchase %s stored: %s item(s), total %s cents",
            result.record.bill_id, len(result.record.items), result.record.total_cents,
        )

        result.dashboard = self._after_commit(sales_delta_cents=None, label="purchase")
        return result


def init_app(app: Flask) -> TransactionProcessor:
    """Build the aggregator + processor pair and register both on the app."""
    DashboardAggregator(app)
    processor = TransactionProcessor.from_app(app)
    processor.init_app(app)
    return processor


def get_processor() -> TransactionProcessor:
    return current_app.extensions[EXTENSION_KEY]
