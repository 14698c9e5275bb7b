from __future__ import annotations

from ..extensions import db
from commerce.time_utils import to_utc_z


class CustomerAddress(db.Model):
    """Saved shipping address, selectable at checkout by id."""
    __tablename__ = "customer_addresses"
    __table_args__ = (
        db.Index("ix_customer_addresses_tenant_user", "tenant_id", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    label = db.Column(db.String(64), nullable=False, default="Home")
    recipient_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    address_line1 = db.Column(db.String(255), nullable=False)
    address_line2 = db.Column(db.String(255), nullable=False, default="")
    city = db.Column(db.String(120), nullable=False)
    state = db.Column(db.String(120), nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def street(self) -> str:
        if self.address_line2:
            return f"{self.address_line1}, {self.address_line2}"
        return self.address_line1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "recipient_name": self.recipient_name,
            "phone": self.phone,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "is_default": self.is_default,
            "created_at": to_utc_z(self.created_at),
        }


class WishlistEntry(db.Model):
    """A customer watching a product; drives low-stock / restock alerts."""
    __tablename__ = "wishlist_entries"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "user_id", "product_id", name="uq_wishlist_tenant_user_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
