# Overview: Service-layer operations for reporting; sale/purchase summaries over a date range.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import extract, func

from ..extensions import db
from ..models import Purchase, Sale
from ..models.purchases import UNKNOWN_SUPPLIER
from ..money import from_cents
from .dashboard_service import get_dashboard
from shopkeeper.time_utils import day_bounds, month_start, utcnow


MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
MONTHLY_WINDOW = 12


def _report_lines(items: list[dict] | None) -> list[dict]:
    lines = []
    for item in items or []:
        price_cents = int(item.get("price_cents") or 0)
        quantity = int(item.get("quantity") or 0)
        total_cents = item.get("total_cents")
        if total_cents is None:
            total_cents = price_cents * quantity
        lines.append({
            "productId": str(item.get("product_id") or ""),
            "productName": item.get("product_name") or "",
            "quantity": quantity,
            "price": from_cents(price_cents),
            "total": from_cents(total_cents),
        })
    return lines


def _report_row(record, created_at: datetime | None) -> dict:
    return {
        "id": str(record.id),
        "date": (created_at or utcnow()).date().isoformat(),
        "subtotal": from_cents(record.subtotal_cents),
        "tax": from_cents(record.tax_cents),
        "total": from_cents(record.total_cents),
        "billId": record.bill_id or "",
        "products": _report_lines(record.items),
    }


def adapt_sale(sale: Sale) -> dict:
    row = _report_row(sale, sale.created_at)
    row["customerName"] = sale.customer_name or ""
    return row


def adapt_purchase(purchase: Purchase) -> dict:
    row = _report_row(purchase, purchase.created_at)
    row["supplierName"] = purchase.supplier_name or UNKNOWN_SUPPLIER
    return row


def _in_range(query, model, start_dt: datetime | None, end_dt: datetime | None):
    if start_dt:
        query = query.filter(model.created_at >= start_dt)
    if end_dt:
        query = query.filter(model.created_at <= end_dt)
    return query


def build_report(start: str | None = None, end: str | None = None) -> dict:
    """
    Sales and purchases within [start 00:00, end 23:59:59.999999], newest first.

    Unparseable bounds are ignored. Profit is sales minus purchases, not margin.
    """
    start_dt, end_dt = day_bounds(start, end)

    sales = _in_range(db.session.query(Sale), Sale, start_dt, end_dt).order_by(
        Sale.created_at.desc(), Sale.id.desc()
    ).all()
    purchases = _in_range(db.session.query(Purchase), Purchase, start_dt, end_dt).order_by(
        Purchase.created_at.desc(), Purchase.id.desc()
    ).all()

    total_sales_cents = sum(s.total_cents or 0 for s in sales)
    total_purchases_cents = sum(p.total_cents or 0 for p in purchases)

    return {
        "summary": {
            "totalSales": from_cents(total_sales_cents),
            "totalPurchases": from_cents(total_purchases_cents),
            "profit": from_cents(total_sales_cents - total_purchases_cents),
            "salesCount": len(sales),
            "purchaseCount": len(purchases),
        },
        "sales": [adapt_sale(s) for s in sales],
        "purchases": [adapt_purchase(p) for p in purchases],
        "dashboard": get_dashboard().snapshot().to_dict(),
    }


def monthly_sales(now: datetime | None = None) -> list[dict]:
    """Sale totals per calendar month, oldest first, for the current and 11 prior months."""
    since = month_start(now or utcnow(), MONTHLY_WINDOW - 1)

    year = extract("year", Sale.created_at)
    month = extract("month", Sale.created_at)
    rows = (
        db.session.query(
            year.label("year"),
            month.label("month"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("total_cents"),
            func.count(Sale.id).label("count"),
        )
        .filter(Sale.created_at >= since)
        .group_by(year, month)
        .order_by(year, month)
        .all()
    )

    return [
        {
            "month": MONTH_NAMES[int(row.month) - 1],
            "year": int(row.year),
            "value": from_cents(int(row.total_cents or 0)),
            "count": int(row.count or 0),
        }
        for row in rows
    ]
