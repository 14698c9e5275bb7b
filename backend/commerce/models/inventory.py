from __future__ import annotations

from ..extensions import db
from commerce.time_utils import to_utc_z


LEDGER_OP_ADD = "add"
LEDGER_OP_REMOVE = "remove"
LEDGER_OP_ADJUST = "adjust"
LEDGER_OP_CHECKOUT = "checkout"

ADJUSTMENT_OPERATIONS = (LEDGER_OP_ADD, LEDGER_OP_REMOVE, LEDGER_OP_ADJUST)


class InventoryLedgerEntry(db.Model):
    """
    Immutable audit row for one stock mutation.

    Written after the mutation succeeds, in the same transaction.
    Never updated, never deleted, never read back to drive decisions.
    """
    __tablename__ = "inventory_ledger"
    __table_args__ = (
        db.Index("ix_inventory_ledger_tenant_variant", "tenant_id", "product_id", "variant_id", "created_at"),
        db.CheckConstraint("previous_stock >= 0", name="ck_ledger_previous_non_negative"),
        db.CheckConstraint("next_stock >= 0", name="ck_ledger_next_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    operation = db.Column(db.String(16), nullable=False)
    delta = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    next_stock = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)

    actor_id = db.Column(db.String(64), nullable=False)
    actor_role = db.Column(db.String(32), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "order_id": self.order_id,
            "operation": self.operation,
            "delta": self.delta,
            "previous_stock": self.previous_stock,
            "next_stock": self.next_stock,
            "note": self.note,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "created_at": to_utc_z(self.created_at),
        }
