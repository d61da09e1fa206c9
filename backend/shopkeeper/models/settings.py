from __future__ import annotations

from ..extensions import db
from shopkeeper.time_utils import to_utc_z


SETTINGS_ID = "global"
DEFAULT_SHOP_NAME = "Bala Tarpaulins"


class ShopSetting(db.Model):
    """Singleton shop profile shown on invoices and the sidebar."""
    __tablename__ = "shop_settings"

    id = db.Column(db.String(32), primary_key=True, default=SETTINGS_ID)

    shop_name = db.Column(db.String(255), nullable=False, default=DEFAULT_SHOP_NAME)
    address = db.Column(db.String(512), nullable=False, default="")
    contact = db.Column(db.String(255), nullable=False, default="")
    shop_logo = db.Column(db.String(1024), nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "shopName": self.shop_name or DEFAULT_SHOP_NAME,
            "address": self.address or "",
            "contact": self.contact or "",
            "shopLogo": self.shop_logo or None,
            "updatedAt": to_utc_z(self.updated_at),
        }
