# Overview: Catalog collaborator for the checkout pipeline (variant lookup, guarded stock decrement).

from __future__ import annotations

from sqlalchemy import select, update

from ..extensions import db
from ..models import Variant


def find_variant(tenant_id: int, product_id: int, variant_id: int) -> Variant | None:
    return (
        db.session.query(Variant)
        .filter_by(id=variant_id, product_id=product_id, tenant_id=tenant_id)
        .first()
    )


def conditional_decrement_stock(tenant_id: int, product_id: int, variant_id: int, quantity: int) -> int:
    """
    Decrement a variant's stock by `quantity` only if stock >= quantity.

    Runs as a single guarded UPDATE inside the caller's transaction and
    returns the affected row count: 1 on success, 0 when stock is
    insufficient or the variant does not exist. Never read-then-write.
    """
    result = db.session.execute(
        update(Variant)
        .where(
            Variant.id == variant_id,
            Variant.product_id == product_id,
            Variant.tenant_id == tenant_id,
            Variant.stock >= quantity,
        )
        .values(stock=Variant.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def current_stock(variant_id: int) -> int | None:
    """Stock as the database currently sees it (bypasses the identity map)."""
    return db.session.execute(select(Variant.stock).where(Variant.id == variant_id)).scalar_one_or_none()
