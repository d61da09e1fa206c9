from __future__ import annotations

from ..extensions import db
from ..money import from_cents
from .sales import _line_items_to_wire
from shopkeeper.time_utils import to_utc_z


UNKNOWN_SUPPLIER = "Unknown Supplier"


class Purchase(db.Model):
    """Stock received from a supplier; the mirror image of Sale."""
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_bill_id", "bill_id"),
        db.Index("ix_purchases_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    bill_id = db.Column(db.String(128), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=False, default=UNKNOWN_SUPPLIER)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    items = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} bill_id={self.bill_id!r} total_cents={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "billId": self.bill_id,
            "supplierName": self.supplier_name or UNKNOWN_SUPPLIER,
            "subtotal": from_cents(self.subtotal_cents),
            "tax": from_cents(self.tax_cents),
            "total": from_cents(self.total_cents),
            "items": _line_items_to_wire(self.items),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
