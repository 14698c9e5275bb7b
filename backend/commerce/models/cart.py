from __future__ import annotations

from ..extensions import db
from commerce.time_utils import to_utc_z


class Cart(db.Model):
    """
    Shopping cart keyed by exactly one identity: an authenticated customer
    (user_id) or an anonymous browser session (session_id).

    A paid checkout empties the cart; the row itself is kept.
    """
    __tablename__ = "carts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "user_id", name="uq_carts_tenant_user"),
        db.UniqueConstraint("tenant_id", "session_id", name="uq_carts_tenant_session"),
        db.CheckConstraint(
            "(user_id IS NULL) <> (session_id IS NULL)",
            name="ck_carts_single_identity",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    session_id = db.Column(db.String(128), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "CartLine",
        backref="cart",
        lazy=True,
        order_by="CartLine.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "lines": [line.to_dict() for line in self.lines],
            "updated_at": to_utc_z(self.updated_at),
        }


class CartLine(db.Model):
    """One variant in a cart with its name and unit price snapshotted."""
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_cart_lines_quantity_positive"),
        db.CheckConstraint("unit_price_minor >= 0", name="ck_cart_lines_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_minor = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_minor": self.unit_price_minor,
        }
