# Overview: Cart totals and cart line operations.

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Iterable

from sqlalchemy import delete, select

from ..extensions import db
from ..errors import NotFound, StockConflict, ValidationError
from ..models import Cart, CartLine, Product, Variant
from ..validation import coerce_int


DEFAULT_SHIPPING_FEE_MINOR = 2500


@dataclass(frozen=True)
class CartTotals:
    subtotal: int
    shipping: int
    total: int

    def to_dict(self) -> dict:
        return asdict(self)


def compute_totals(lines: Iterable, shipping_fee: int = DEFAULT_SHIPPING_FEE_MINOR) -> CartTotals:
    """
    Compute order totals in minor currency units.

    `lines` are any objects with `quantity` and `unit_price_minor`
    (CartLine, OrderLine). A flat shipping fee applies only when the
    subtotal is positive. Pure: no reads, no writes.
    """
    subtotal = sum(line.quantity * line.unit_price_minor for line in lines)
    shipping = shipping_fee if subtotal > 0 else 0
    return CartTotals(subtotal=subtotal, shipping=shipping, total=subtotal + shipping)


# =============================================================================
# CART LOOKUP
# =============================================================================

def _identity_filter(user_id: int | None, session_id: str | None) -> dict:
    if (user_id is None) == (session_id is None):
        raise ValidationError("Cart identity requires exactly one of customer or session id")
    if user_id is not None:
        return {"user_id": user_id}
    return {"session_id": session_id}


def get_cart(tenant_id: int, *, user_id: int | None = None, session_id: str | None = None) -> Cart | None:
    identity = _identity_filter(user_id, session_id)
    return db.session.query(Cart).filter_by(tenant_id=tenant_id, **identity).first()


def get_or_create_cart(tenant_id: int, *, user_id: int | None = None, session_id: str | None = None) -> Cart:
    cart = get_cart(tenant_id, user_id=user_id, session_id=session_id)
    if cart is not None:
        return cart

    cart = Cart(tenant_id=tenant_id, user_id=user_id, session_id=session_id)
    db.session.add(cart)
    db.session.commit()
    return cart


# =============================================================================
# LINE MUTATIONS
# =============================================================================

def set_cart_line(
    tenant_id: int,
    *,
    product_id,
    variant_id,
    quantity,
    user_id: int | None = None,
    session_id: str | None = None,
) -> Cart:
    """
    Put a variant in the cart with the given quantity.

    An existing line for the same variant has its quantity replaced and its
    price re-snapshotted. Stock is checked here as a courtesy; the binding
    check happens at checkout finalize.
    """
    product_id = coerce_int(product_id, "product_id")
    variant_id = coerce_int(variant_id, "variant_id")
    quantity = coerce_int(quantity, "quantity")
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")

    product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id, is_active=True).first()
    if product is None:
        raise NotFound("Product not found")

    variant = db.session.query(Variant).filter_by(id=variant_id, product_id=product.id).first()
    if variant is None:
        raise NotFound("Variant not found")

    if variant.stock < quantity:
        raise StockConflict("Insufficient stock", details={"available": variant.stock})

    cart = get_or_create_cart(tenant_id, user_id=user_id, session_id=session_id)

    existing = next((line for line in cart.lines if line.variant_id == variant.id), None)
    if existing is not None:
        existing.quantity = quantity
        existing.unit_price_minor = variant.price_minor
    else:
        cart.lines.append(
            CartLine(
                product_id=product.id,
                variant_id=variant.id,
                name=variant.display_name(),
                quantity=quantity,
                unit_price_minor=variant.price_minor,
            )
        )

    db.session.commit()
    return cart


def remove_cart_line(tenant_id: int, line_id: int, *, user_id: int | None = None, session_id: str | None = None) -> Cart:
    cart = get_cart(tenant_id, user_id=user_id, session_id=session_id)
    line = None
    if cart is not None:
        line = next((item for item in cart.lines if item.id == line_id), None)
    if line is None:
        raise NotFound("Cart item not found")

    cart.lines.remove(line)
    db.session.commit()
    return cart


def clear_cart_lines(tenant_id: int, user_id: int) -> int:
    """
    Empty the customer's cart inside the caller's transaction.

    The cart row is kept. Returns the number of lines removed.
    """
    cart_ids = select(Cart.id).where(Cart.tenant_id == tenant_id, Cart.user_id == user_id)
    result = db.session.execute(
        delete(CartLine)
        .where(CartLine.cart_id.in_(cart_ids))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def cart_to_dict(cart: Cart | None, *, shipping_fee: int, currency: str) -> dict:
    lines = cart.lines if cart is not None else []
    payload = {
        "id": cart.id if cart is not None else None,
        "lines": [line.to_dict() for line in lines],
        "currency": currency,
    }
    payload.update(compute_totals(lines, shipping_fee).to_dict())
    return payload
