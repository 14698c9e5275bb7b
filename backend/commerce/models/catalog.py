from __future__ import annotations

from ..extensions import db
from commerce.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data. Stock and price live on the variants.

    MULTI-TENANT: slugs are unique within a tenant.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "slug", name="uq_products_tenant_slug"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    slug = db.Column(db.String(128), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    variants = db.relationship(
        "Variant",
        backref="product",
        lazy=True,
        order_by="Variant.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} slug={self.slug!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "variants": [v.to_dict() for v in self.variants],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Variant(db.Model):
    """
    Purchasable size/color combination with its own stock counter.

    Stock is the contended resource at checkout finalize. It is only ever
    decremented with a guarded UPDATE (stock >= quantity) and the CHECK
    constraint backs that up at the database level.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_variants_tenant_sku"),
        db.CheckConstraint("stock >= 0", name="ck_variants_stock_non_negative"),
        db.CheckConstraint("price_minor >= 0", name="ck_variants_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    size = db.Column(db.String(32), nullable=False)
    color = db.Column(db.String(32), nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    price_minor = db.Column(db.Integer, nullable=False)

    def display_name(self) -> str:
        return f"{self.product.name} ({self.size}/{self.color})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sku": self.sku,
            "size": self.size,
            "color": self.color,
            "stock": self.stock,
            "price_minor": self.price_minor,
        }
