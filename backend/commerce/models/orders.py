from __future__ import annotations

from ..extensions import db
from commerce.time_utils import to_utc_z


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_PAID = "paid"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_PAID,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)


class Order(db.Model):
    """
    Customer order created at checkout initiation.

    LIFECYCLE: created once in `pending`, mutated only through the
    transition table in order_service, never deleted. The timeline
    (OrderStatusEvent rows) is append-only and ordered by insertion.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_ref", name="uq_orders_tenant_ref"),
        db.Index("ix_orders_tenant_user_created", "tenant_id", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Human-facing reference, e.g. "SWS-1767000000000-K3F9QZ"
    order_ref = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    currency = db.Column(db.String(8), nullable=False, default="NGN")
    subtotal_minor = db.Column(db.Integer, nullable=False)
    shipping_minor = db.Column(db.Integer, nullable=False)
    total_minor = db.Column(db.Integer, nullable=False)

    # Shipping address snapshot
    shipping_address = db.Column(db.String(512), nullable=False)
    shipping_city = db.Column(db.String(120), nullable=False)
    shipping_state = db.Column(db.String(120), nullable=False)

    tracking_number = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    timeline = db.relationship(
        "OrderStatusEvent",
        backref="order",
        lazy=True,
        order_by="OrderStatusEvent.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} ref={self.order_ref!r} status={self.status}>"

    def summary_dict(self) -> dict:
        return {
            "id": self.id,
            "order_ref": self.order_ref,
            "status": self.status,
            "total_minor": self.total_minor,
            "created_at": to_utc_z(self.created_at),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "order_ref": self.order_ref,
            "status": self.status,
            "currency": self.currency,
            "subtotal_minor": self.subtotal_minor,
            "shipping_minor": self.shipping_minor,
            "total_minor": self.total_minor,
            "shipping_address": {
                "address": self.shipping_address,
                "city": self.shipping_city,
                "state": self.shipping_state,
            },
            "tracking_number": self.tracking_number,
            "items": [line.to_dict() for line in self.lines],
            "timeline": [event.to_dict() for event in self.timeline],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    """Immutable snapshot of one purchased variant."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_minor = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_minor": self.unit_price_minor,
        }


class OrderStatusEvent(db.Model):
    """Append-only timeline entry."""
    __tablename__ = "order_status_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False)
    note = db.Column(db.String(255), nullable=False, default="")
    tracking_number = db.Column(db.String(128), nullable=True)
    actor = db.Column(db.String(32), nullable=False, default="system")
    at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "note": self.note,
            "tracking_number": self.tracking_number,
            "actor": self.actor,
            "at": to_utc_z(self.at),
        }


CARRIER_STATUSES = (
    "label_created",
    "picked_up",
    "in_transit",
    "out_for_delivery",
    "delivered",
    "exception",
)


class TrackingEvent(db.Model):
    """Carrier-reported fulfillment update for an order."""
    __tablename__ = "tracking_events"
    __table_args__ = (
        db.Index("ix_tracking_events_tenant_order", "tenant_id", "order_id", "event_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)

    provider = db.Column(db.String(64), nullable=False)
    external_tracking_id = db.Column(db.String(128), nullable=False)
    status = db.Column(db.String(32), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    message = db.Column(db.String(255), nullable=True)
    event_at = db.Column(db.DateTime(timezone=True), nullable=False)
    raw = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider": self.provider,
            "external_tracking_id": self.external_tracking_id,
            "status": self.status,
            "location": self.location,
            "message": self.message,
            "event_at": to_utc_z(self.event_at),
        }
