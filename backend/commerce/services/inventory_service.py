# Overview: Inventory ledger and admin stock adjustments.

"""
Inventory Ledger Invariants

- Stock lives on product_variants.stock; the ledger is an audit trail of
  every mutation, never read back to compute stock.
- Each mutation writes exactly one ledger row in the same DB transaction
  as the stock change (checkout finalize writes one per order line).
- Ledger rows are append-only (no updates/deletes).
- Stock may never go negative: checkout uses a guarded UPDATE; admin
  adjustments reject a negative result with StockConflict.

Wishlist alerts:
- crossing into low stock: previous > LOW_STOCK_THRESHOLD and
  0 < current <= LOW_STOCK_THRESHOLD
- restock: previous <= 0 and current > 0
Alerts (inbox entry plus email job per subscriber) are written after
commit and never fail the adjustment.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFound, StockConflict, ValidationError
from ..models import InventoryLedgerEntry, Product, Variant
from ..models.inventory import (
    ADJUSTMENT_OPERATIONS,
    LEDGER_OP_ADD,
    LEDGER_OP_ADJUST,
    LEDGER_OP_REMOVE,
)
from ..validation import clean_choice, clean_text, coerce_int
from .concurrency import lock_for_update, run_with_retry
from .inbox_service import stock_alert_entry
from .directory_service import wishlist_subscribers
from .notification_service import STOCK_ALERT_LOW, STOCK_ALERT_RESTOCK


LOW_STOCK_THRESHOLD = 3
LEDGER_PAGE_MAX = 200
NOTE_MAX_LENGTH = 240


def append_ledger_entry(
    *,
    tenant_id: int,
    product_id: int,
    variant_id: int,
    operation: str,
    previous_stock: int,
    next_stock: int,
    actor_id: str,
    actor_role: str,
    note: str | None = None,
    order_id: int | None = None,
) -> InventoryLedgerEntry:
    """
    Add a ledger row to the current session.

    Flushes but does not commit: the row belongs to the caller's transaction
    and disappears with it on rollback.
    """
    entry = InventoryLedgerEntry(
        tenant_id=tenant_id,
        product_id=product_id,
        variant_id=variant_id,
        order_id=order_id,
        operation=operation,
        delta=next_stock - previous_stock,
        previous_stock=previous_stock,
        next_stock=next_stock,
        note=note,
        actor_id=str(actor_id),
        actor_role=actor_role,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def stock_alert_type(previous_stock: int, current_stock: int) -> str | None:
    crossed_to_low = previous_stock > LOW_STOCK_THRESHOLD and 0 < current_stock <= LOW_STOCK_THRESHOLD
    if crossed_to_low:
        return STOCK_ALERT_LOW
    if previous_stock <= 0 and current_stock > 0:
        return STOCK_ALERT_RESTOCK
    return None


def notify_wishlist_subscribers(
    *,
    tenant_id: int,
    product: Product,
    previous_stock: int,
    current_stock: int,
    notifications,
) -> int:
    """
    Stock alerts for watchers of `product`: one inbox entry per subscriber,
    plus an email job when a queue is given. Returns jobs enqueued.

    Runs after the adjustment has committed; an inbox write failure is
    logged and does not undo the adjustment.
    """
    alert = stock_alert_type(previous_stock, current_stock)
    if alert is None:
        return 0

    subscribers = wishlist_subscribers(tenant_id, product.id)
    if not subscribers:
        return 0

    try:
        for user in subscribers:
            stock_alert_entry(
                tenant_id=tenant_id,
                user_id=user.id,
                product_id=product.id,
                product_name=product.name,
                alert_type=alert,
                current_stock=current_stock,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to write stock alert inbox entries for product %s", product.id)

    if notifications is None:
        return 0

    enqueued = 0
    for user in subscribers:
        result = notifications.enqueue_wishlist_stock(
            email=user.email,
            first_name=user.first_name,
            product_name=product.name,
            alert_type=alert,
            current_stock=current_stock,
        )
        if result.enqueued:
            enqueued += 1
    return enqueued


def adjust_inventory(
    tenant_id: int,
    *,
    product_id,
    variant_id,
    operation: str,
    quantity=None,
    target_stock=None,
    note: str | None = None,
    actor_id: str,
    actor_role: str,
    notifications=None,
) -> InventoryLedgerEntry:
    """
    Apply an admin stock adjustment and record it in the ledger.

    operation:
    - add:    stock + quantity (quantity >= 1 required)
    - remove: stock - quantity (quantity >= 1 required)
    - adjust: stock = target_stock (target_stock >= 0 required)

    Last write wins between concurrent admin adjustments; the variant row
    is locked where the database supports it. A result below zero raises
    StockConflict and changes nothing.
    """
    operation = clean_choice(operation, "operation", ADJUSTMENT_OPERATIONS)
    product_id = coerce_int(product_id, "product_id")
    variant_id = coerce_int(variant_id, "variant_id")
    note = clean_text(note, "note", max_length=NOTE_MAX_LENGTH) or None

    if operation in (LEDGER_OP_ADD, LEDGER_OP_REMOVE):
        if quantity is None:
            raise ValidationError("Quantity is required for add/remove operations")
        quantity = coerce_int(quantity, "quantity")
        if quantity < 1:
            raise ValidationError("quantity must be a positive integer")
    else:
        if target_stock is None:
            raise ValidationError("target_stock is required for adjust operation")
        target_stock = coerce_int(target_stock, "target_stock")
        if target_stock < 0:
            raise ValidationError("target_stock must be >= 0")

    product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if product is None:
        raise NotFound("Product not found")

    def _apply():
        variant = lock_for_update(
            db.session.query(Variant).filter_by(id=variant_id, product_id=product.id, tenant_id=tenant_id)
        ).populate_existing().first()
        if variant is None:
            raise NotFound("Variant not found")

        previous = variant.stock
        if operation == LEDGER_OP_ADD:
            nxt = previous + quantity
        elif operation == LEDGER_OP_REMOVE:
            nxt = previous - quantity
        else:
            nxt = target_stock

        if nxt < 0:
            raise StockConflict("Stock cannot be negative", details={"available": previous})

        variant.stock = nxt
        entry = append_ledger_entry(
            tenant_id=tenant_id,
            product_id=product.id,
            variant_id=variant.id,
            operation=operation,
            previous_stock=previous,
            next_stock=nxt,
            note=note,
            actor_id=actor_id,
            actor_role=actor_role,
        )
        db.session.commit()
        return entry

    try:
        entry = run_with_retry(_apply)
    except Exception:
        db.session.rollback()
        raise

    notify_wishlist_subscribers(
        tenant_id=tenant_id,
        product=product,
        previous_stock=entry.previous_stock,
        current_stock=entry.next_stock,
        notifications=notifications,
    )
    return entry


def list_ledger(tenant_id: int, *, product_id=None, variant_id=None, limit=None) -> list[InventoryLedgerEntry]:
    """Newest first, capped at LEDGER_PAGE_MAX rows."""
    query = db.session.query(InventoryLedgerEntry).filter(InventoryLedgerEntry.tenant_id == tenant_id)
    if product_id is not None:
        query = query.filter(InventoryLedgerEntry.product_id == coerce_int(product_id, "product_id"))
    if variant_id is not None:
        query = query.filter(InventoryLedgerEntry.variant_id == coerce_int(variant_id, "variant_id"))

    limit = LEDGER_PAGE_MAX if limit is None else max(1, min(coerce_int(limit, "limit"), LEDGER_PAGE_MAX))
    return (
        query.order_by(InventoryLedgerEntry.created_at.desc(), InventoryLedgerEntry.id.desc())
        .limit(limit)
        .all()
    )
