# Overview: Dashboard aggregator; rebuilds the shop-wide summary snapshot.

"""
Dashboard Aggregator

Owns the single DashboardStat row. The snapshot is derived state: it is
rebuilt wholesale from products, sales and purchases by recompute(), never
patched field by field, except for the sale counter bump which the next
recompute supersedes.

The aggregator is registered on the app (init_app) and reached through
get_dashboard(); it keeps the last snapshot it computed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import Flask, current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import DashboardStat, Product, Purchase, Sale
from ..models.dashboard import DASHBOARD_ID
from ..money import from_cents
from shopkeeper.time_utils import to_utc_z, utcnow


EXTENSION_KEY = "shopkeeper.dashboard"


class DashboardRecomputeError(Exception):
    """Raised when the snapshot could not be rebuilt or stored."""


@dataclass(frozen=True)
class DashboardSnapshot:
    total_sales_cents: int
    inventory_value_cents: int
    orders: int
    low_stock: int
    out_of_stock: int
    updated_at: datetime | None = field(default=None, compare=False)

    @classmethod
    def from_row(cls, row: DashboardStat) -> "DashboardSnapshot":
        return cls(
            total_sales_cents=row.total_sales_cents or 0,
            inventory_value_cents=row.inventory_value_cents or 0,
            orders=row.orders or 0,
            low_stock=row.low_stock or 0,
            out_of_stock=row.out_of_stock or 0,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict:
        return {
            "totalSales": from_cents(self.total_sales_cents),
            "inventoryValue": from_cents(self.inventory_value_cents),
            "orders": self.orders,
            "lowStock": self.low_stock,
            "outOfStock": self.out_of_stock,
            "updatedAt": to_utc_z(self.updated_at),
        }


@dataclass(frozen=True)
class InventoryFigures:
    inventory_value_cents: int
    low_stock: int
    out_of_stock: int


class DashboardAggregator:
    def __init__(self, app: Flask | None = None):
        self.last_snapshot: DashboardSnapshot | None = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.extensions[EXTENSION_KEY] = self

    # -- building blocks ---------------------------------------------------

    def inventory_figures(self) -> InventoryFigures:
        value = 0
        low = 0
        out = 0
        for product in db.session.query(Product).all():
            value += (product.price_cents or 0) * (product.quantity or 0)
            if product.is_out_of_stock:
                out += 1
            elif product.is_low_stock:
                low += 1

        return InventoryFigures(inventory_value_cents=value, low_stock=low, out_of_stock=out)

    def sale_totals(self) -> tuple[int, int]:
        """(sum of sale totals in cents, number of sales); not date filtered."""
        total, count = db.session.query(
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.count(Sale.id),
        ).one()
        return int(total or 0), int(count or 0)

    def purchase_totals(self) -> tuple[int, int]:
        """(sum of purchase totals in cents, number of purchases); reporting only."""
        total, count = db.session.query(
            func.coalesce(func.sum(Purchase.total_cents), 0),
            func.count(Purchase.id),
        ).one()
        return int(total or 0), int(count or 0)

    def _row(self) -> DashboardStat:
        row = db.session.get(DashboardStat, DASHBOARD_ID)
        if row is None:
            row = DashboardStat(
                id=DASHBOARD_ID,
                total_sales_cents=0,
                inventory_value_cents=0,
                orders=0,
                low_stock=0,
                out_of_stock=0,
            )
            db.session.add(row)
        return row

    # -- operations --------------------------------------------------------

    def recompute(self) -> DashboardSnapshot:
        """
        Rebuild the snapshot from scratch and overwrite the stored row.

        Orders is max(sale count, purchase count). That is the figure the
        dashboard has always shown; it is not a combined order count.
        """
        try:
            inventory = self.inventory_figures()
            total_sales_cents, sale_count = self.sale_totals()
            _, purchase_count = self.purchase_totals()

            row = self._row()
            row.total_sales_cents = total_sales_cents
            row.inventory_value_cents = inventory.inventory_value_cents
            row.orders = max(sale_count, purchase_count)
            row.low_stock = inventory.low_stock
            row.out_of_stock = inventory.out_of_stock
            row.updated_at = utcnow()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DashboardRecomputeError(str(exc)) from exc

        self.last_snapshot = DashboardSnapshot.from_row(row)
        return self.last_snapshot

    def snapshot(self) -> DashboardSnapshot:
        """Stored snapshot; the first read builds it."""
        row = db.session.get(DashboardStat, DASHBOARD_ID)
        if row is None:
            return self.recompute()
        self.last_snapshot = DashboardSnapshot.from_row(row)
        return self.last_snapshot

    def increment_counters(self, *, total_sales_delta_cents: int = 0, orders_delta: int = 0) -> DashboardSnapshot | None:
        """
        Bump total sales / orders in place ahead of a full recompute.

        With nothing to add, returns the stored snapshot (None if none yet).
        """
        if not total_sales_delta_cents and not orders_delta:
            row = db.session.get(DashboardStat, DASHBOARD_ID)
            return DashboardSnapshot.from_row(row) if row is not None else None

        try:
            row = self._row()
            row.total_sales_cents = (row.total_sales_cents or 0) + int(total_sales_delta_cents)
            row.orders = (row.orders or 0) + int(orders_delta)
            row.updated_at = utcnow()
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise DashboardRecomputeError(str(exc)) from exc

        self.last_snapshot = DashboardSnapshot.from_row(row)
        return self.last_snapshot


def get_dashboard() -> DashboardAggregator:
    return current_app.extensions[EXTENSION_KEY]


def refresh_quietly(reason: str) -> DashboardSnapshot | None:
    """
    Recompute after a write without failing the write.

    Skipped when DASHBOARD_REFRESH_ON_WRITE is off.
    """
    if not current_app.config.get("DASHBOARD_REFRESH_ON_WRITE", True):
        return None
    try:
        return get_dashboard().recompute()
    except DashboardRecomputeError:
        current_app.logger.exception("Failed to recalculate dashboard stats after %s", reason)
        return None
