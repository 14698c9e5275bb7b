from __future__ import annotations

from ..extensions import db
from commerce.time_utils import to_utc_z


PAYMENT_STATUS_INITIALIZED = "initialized"
PAYMENT_STATUS_SUCCESS = "success"
PAYMENT_STATUS_FAILED = "failed"
PAYMENT_STATUS_REFUNDED = "refunded"

PROVIDER_PAYSTACK = "paystack"


class Payment(db.Model):
    """
    Payment intent for exactly one order.

    Keyed by the gateway reference (provider_ref) because webhooks and
    redirect callbacks only carry that reference. The transition
    initialized -> success happens at most once per reference; it is
    applied with a compare-and-swap UPDATE in checkout_service.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "provider_ref", name="uq_payments_tenant_ref"),
        db.UniqueConstraint("order_id", name="uq_payments_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)

    provider = db.Column(db.String(32), nullable=False, default=PROVIDER_PAYSTACK)
    provider_ref = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_INITIALIZED, index=True)

    amount_minor = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="NGN")

    initialized_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # "metadata" is reserved on declarative classes
    provider_metadata = db.Column("metadata", db.JSON, nullable=False, default=dict)

    order = db.relationship("Order", backref=db.backref("payment", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "provider": self.provider,
            "payment_ref": self.provider_ref,
            "status": self.status,
            "amount_minor": self.amount_minor,
            "currency": self.currency,
            "initialized_at": to_utc_z(self.initialized_at),
            "verified_at": to_utc_z(self.verified_at),
            "metadata": dict(self.provider_metadata or {}),
        }
