from __future__ import annotations

from ..extensions import db
from ..money import from_cents
from shopkeeper.time_utils import to_utc_z


def _line_items_to_wire(items: list[dict] | None) -> list[dict]:
    """Stored snapshots keep cents; the wire format carries major units."""
    wire = []
    for item in items or []:
        row = {
            "productId": item.get("product_id"),
            "productCode": item.get("product_code") or "",
            "productName": item.get("product_name"),
            "quantity": item.get("quantity"),
            "price": from_cents(item.get("price_cents")),
            "total": from_cents(item.get("total_cents")),
            "size": item.get("size") or "",
            "gsm": item.get("gsm") or "",
        }
        if "price_per_quantity_cents" in item:
            row["pricePerQuantity"] = from_cents(item.get("price_per_quantity_cents"))
        wire.append(row)
    return wire


class Sale(db.Model):
    """
    Completed sale with its line items embedded as an immutable snapshot.

    Lines are copied from the product at processing time (name, size, gsm,
    effective price) so later product edits never rewrite history.
    subtotal/tax/total are stored exactly as the caller supplied them.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_bill_id", "bill_id"),
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # External bill number (user-supplied or generated by the client)
    bill_id = db.Column(db.String(128), nullable=False)
    customer_name = db.Column(db.String(255), nullable=False, default="")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    items = db.Column(db.JSON, nullable=False, default=list)

    # Defaults to now; overridable by the supplied invoice date
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Sale id={self.id} bill_id={self.bill_id!r} total_cents={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "billId": self.bill_id,
            "customerName": self.customer_name or "",
            "subtotal": from_cents(self.subtotal_cents),
            "tax": from_cents(self.tax_cents),
            "total": from_cents(self.total_cents),
            "items": _line_items_to_wire(self.items),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
