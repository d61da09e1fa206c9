from __future__ import annotations

from ..extensions import db
from ..money import from_cents
from shopkeeper.time_utils import to_utc_z


DEFAULT_REORDER_POINT = 10


class Product(db.Model):
    """
    Product master data and on-hand stock.

    IDENTITY:
    - product_code is the shop-facing identity (trimmed + uppercased)
    - sku mirrors product_code unless the shop assigns a different one
    - id is the internal identifier, also accepted by lookups

    STOCK:
    quantity is the current on-hand count. A sale must never drive it
    negative; manual edits and adjust-stock are the only ways to do so.

    version_id provides optimistic locking so two batches that touch the
    same product cannot silently overwrite each other's quantity.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("product_code", name="uq_products_product_code"),
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_code = db.Column(db.String(64), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents (wire format is major units)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=False, default=DEFAULT_REORDER_POINT)

    size = db.Column(db.String(64), nullable=True)
    gsm = db.Column(db.String(64), nullable=True)
    image = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.product_code!r} qty={self.quantity}>"

    @property
    def is_out_of_stock(self) -> bool:
        return (self.quantity or 0) <= 0

    @property
    def is_low_stock(self) -> bool:
        qty = self.quantity or 0
        return 0 < qty <= (self.reorder_point or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_code,
            "sku": self.sku,
            "name": self.name,
            "price": from_cents(self.price_cents),
            "priceCents": self.price_cents,
            "quantity": self.quantity,
            "reorderPoint": self.reorder_point,
            "size": self.size or "",
            "gsm": self.gsm or "",
            "image": self.image,
            "versionId": self.version_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
