from __future__ import annotations

from ..extensions import db


DASHBOARD_ID = "global"


class DashboardStat(db.Model):
    """
    Singleton row holding the last computed dashboard snapshot.

    Derived state: the dashboard service is its only writer and can rebuild
    it from products, sales and purchases at any time.
    """
    __tablename__ = "dashboard_stats"

    id = db.Column(db.String(32), primary_key=True, default=DASHBOARD_ID)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    inventory_value_cents = db.Column(db.Integer, nullable=False, default=0)
    orders = db.Column(db.Integer, nullable=False, default=0)
    low_stock = db.Column(db.Integer, nullable=False, default=0)
    out_of_stock = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<DashboardStat orders={self.orders} total_sales_cents={self.total_sales_cents}>"
