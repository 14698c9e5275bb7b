# Overview: Checkout initiation and payment finalization (the order/payment state machine core).

"""
Checkout & Payment Finalization

INITIATION (initialize_checkout):
1. Cart must have lines; a shipping address must resolve (saved id or inline).
2. Totals come from cart_service.compute_totals.
3. Order and payment references are timestamp + random suffix.
4. The gateway transaction is opened BEFORE any row is written, so a
   gateway failure leaves nothing behind.
5. Order (pending, one timeline entry) and Payment (initialized) are
   committed together or not at all. A gateway transaction orphaned by a
   failed commit is harmless: it is never charged without confirmation.

FINALIZATION (finalize_successful_payment):
Webhook, browser callback and status poll all converge here.
- Payment already `success` -> idempotent=True, nothing else happens.
- Otherwise one DB transaction:
    a. compare-and-swap payments.status initialized -> success
       (UPDATE ... WHERE status='initialized'); zero rows means a
       concurrent finalize already won, so roll back and report idempotent
    b. order -> paid, timeline entry "Payment confirmed."
    c. guarded stock decrement per line (stock >= quantity) plus one
       `checkout` ledger row per line; any miss raises StockConflict and
       rolls back everything, payment stays `initialized`
    d. customer's cart emptied
- After commit: best-effort "paid" notification.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..errors import (
    CommerceError,
    EmptyCart,
    Forbidden,
    InvalidTransition,
    NotFound,
    StockConflict,
    ValidationError,
)
from ..models import CustomerAddress, Order, OrderLine, Payment
from ..models.auth import ROLE_CUSTOMER
from ..models.inventory import LEDGER_OP_CHECKOUT
from ..models.orders import ORDER_STATUS_PAID, ORDER_STATUS_PENDING, ORDER_STATUS_PROCESSING
from ..models.payments import (
    PAYMENT_STATUS_INITIALIZED,
    PAYMENT_STATUS_SUCCESS,
    PROVIDER_PAYSTACK,
)
from ..validation import PayloadPolicy, clean_email, clean_text, coerce_int, validate_payload
from commerce.time_utils import epoch_millis, utcnow
from .cart_service import DEFAULT_SHIPPING_FEE_MINOR, clear_cart_lines, compute_totals, get_cart
from .catalog_service import conditional_decrement_stock, current_stock
from .concurrency import run_with_retry
from .inventory_service import append_ledger_entry
from .order_service import ACTOR_SYSTEM, append_timeline_event, notify_order_status


ORDER_REF_PREFIX = "SWS"
PAYMENT_REF_PREFIX = "PAY"
REFERENCE_SUFFIX_LENGTH = 6
_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits

NOTE_ORDER_CREATED = "Order created and awaiting payment confirmation."
NOTE_PAYMENT_CONFIRMED = "Payment confirmed."

# Order statuses from which a confirmed payment may move the order to paid
FINALIZABLE_ORDER_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_PROCESSING, ORDER_STATUS_PAID)

SOURCE_WEBHOOK = "webhook"
SOURCE_CALLBACK = "callback"
SOURCE_STATUS_POLL = "status_poll"

CHECKOUT_POLICY = PayloadPolicy(
    allowed_fields={"email", "address_id", "shipping_address", "city", "state"},
    required_fields={"email"},
)


@dataclass(frozen=True)
class CheckoutSession:
    order_ref: str
    payment_ref: str
    authorization_url: str

    def to_dict(self) -> dict:
        return {
            "order_ref": self.order_ref,
            "payment_ref": self.payment_ref,
            "authorization_url": self.authorization_url,
        }


@dataclass
class FinalizeResult:
    payment: Payment
    order: Order
    idempotent: bool


def generate_reference(prefix: str) -> str:
    """`<PREFIX>-<epoch ms>-<6 random chars>`; unique enough to never collide in practice."""
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(REFERENCE_SUFFIX_LENGTH))
    return f"{prefix}-{epoch_millis()}-{suffix}"


# =============================================================================
# INITIATION
# =============================================================================

def _resolve_shipping_address(tenant_id: int, user_id: int, data: dict) -> tuple[str, str, str]:
    if data.get("address_id") is not None:
        address_id = coerce_int(data["address_id"], "address_id")
        address = (
            db.session.query(CustomerAddress)
            .filter_by(id=address_id, tenant_id=tenant_id, user_id=user_id)
            .first()
        )
        if address is None:
            raise NotFound("Address not found")
        return address.street(), address.city, address.state

    street = clean_text(data.get("shipping_address"), "shipping_address", min_length=5, max_length=512)
    city = clean_text(data.get("city"), "city", min_length=2, max_length=120)
    state = clean_text(data.get("state"), "state", min_length=2, max_length=120)
    if not (street and city and state):
        raise ValidationError("Provide address_id or shipping_address/city/state")
    return street, city, state


def initialize_checkout(
    tenant_id: int,
    user_id: int,
    payload: dict,
    *,
    gateway,
    shipping_fee: int = DEFAULT_SHIPPING_FEE_MINOR,
    currency: str = "NGN",
) -> CheckoutSession:
    data = validate_payload(payload, CHECKOUT_POLICY)
    email = clean_email(data["email"])

    cart = get_cart(tenant_id, user_id=user_id)
    if cart is None or not cart.lines:
        raise EmptyCart("Cart is empty")

    street, city, state = _resolve_shipping_address(tenant_id, user_id, data)
    totals = compute_totals(cart.lines, shipping_fee)

    order_ref = generate_reference(ORDER_REF_PREFIX)
    payment_ref = generate_reference(PAYMENT_REF_PREFIX)

    # Gateway first: a failure here must leave no order/payment behind.
    opened = gateway.initialize_transaction(
        email=email,
        amount_minor=totals.total,
        reference=payment_ref,
        metadata={"tenant_id": tenant_id, "user_id": user_id, "order_ref": order_ref},
    )

    try:
        order = Order(
            tenant_id=tenant_id,
            user_id=user_id,
            order_ref=order_ref,
            status=ORDER_STATUS_PENDING,
            currency=currency,
            subtotal_minor=totals.subtotal,
            shipping_minor=totals.shipping,
            total_minor=totals.total,
            shipping_address=street,
            shipping_city=city,
            shipping_state=state,
        )
        for line in cart.lines:
            order.lines.append(
                OrderLine(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    name=line.name,
                    quantity=line.quantity,
                    unit_price_minor=line.unit_price_minor,
                )
            )
        append_timeline_event(order, ORDER_STATUS_PENDING, NOTE_ORDER_CREATED)
        db.session.add(order)
        db.session.flush()

        payment = Payment(
            tenant_id=tenant_id,
            user_id=user_id,
            order_id=order.id,
            provider=PROVIDER_PAYSTACK,
            provider_ref=payment_ref,
            status=PAYMENT_STATUS_INITIALIZED,
            amount_minor=totals.total,
            currency=currency,
            initialized_at=utcnow(),
            provider_metadata={
                "access_code": opened.access_code,
                "authorization_url": opened.authorization_url,
            },
        )
        db.session.add(payment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Checkout initialized: tenant=%s order_ref=%s payment_ref=%s total=%s",
        tenant_id, order_ref, payment_ref, totals.total,
    )
    return CheckoutSession(order_ref=order_ref, payment_ref=payment_ref, authorization_url=opened.authorization_url)


# =============================================================================
# FINALIZATION
# =============================================================================

def find_payment(reference: str, tenant_id: int | None = None) -> Payment:
    query = db.session.query(Payment).filter(Payment.provider_ref == reference)
    if tenant_id is not None:
        query = query.filter(Payment.tenant_id == tenant_id)
    payment = query.populate_existing().first()
    if payment is None:
        raise NotFound("Payment reference not found")
    return payment


def _load_order(payment: Payment) -> Order:
    order = db.session.get(Order, payment.order_id, populate_existing=True)
    if order is None:
        raise NotFound("Order not found for payment")
    return order


def _apply_finalize(reference: str, metadata: dict, tenant_id: int | None) -> FinalizeResult:
    payment = find_payment(reference, tenant_id)
    order = _load_order(payment)

    if payment.status == PAYMENT_STATUS_SUCCESS:
        return FinalizeResult(payment=payment, order=order, idempotent=True)
    if payment.status != PAYMENT_STATUS_INITIALIZED:
        raise InvalidTransition(f"Payment is {payment.status} and cannot be confirmed")
    if order.status not in FINALIZABLE_ORDER_STATUSES:
        raise InvalidTransition(f"Order is {order.status} and cannot be marked paid")

    merged = dict(payment.provider_metadata or {})
    merged.update({k: v for k, v in (metadata or {}).items() if v is not None})

    swapped = db.session.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PAYMENT_STATUS_INITIALIZED)
        .values({
            Payment.status: PAYMENT_STATUS_SUCCESS,
            Payment.verified_at: utcnow(),
            Payment.provider_metadata: merged,
        })
        .execution_options(synchronize_session=False)
    )
    if swapped.rowcount != 1:
        # Lost the race to a concurrent finalize for the same reference
        db.session.rollback()
        payment = find_payment(reference, tenant_id)
        if payment.status != PAYMENT_STATUS_SUCCESS:
            raise InvalidTransition(f"Payment is {payment.status} and cannot be confirmed")
        return FinalizeResult(payment=payment, order=_load_order(payment), idempotent=True)

    order.status = ORDER_STATUS_PAID
    append_timeline_event(order, ORDER_STATUS_PAID, NOTE_PAYMENT_CONFIRMED)

    for line in order.lines:
        if conditional_decrement_stock(order.tenant_id, line.product_id, line.variant_id, line.quantity) != 1:
            raise StockConflict(
                f"Insufficient stock for {line.name}",
                details={"product_id": line.product_id, "variant_id": line.variant_id},
            )
        remaining = current_stock(line.variant_id)
        append_ledger_entry(
            tenant_id=order.tenant_id,
            product_id=line.product_id,
            variant_id=line.variant_id,
            order_id=order.id,
            operation=LEDGER_OP_CHECKOUT,
            previous_stock=remaining + line.quantity,
            next_stock=remaining,
            note=f"Checkout {order.order_ref}",
            actor_id=ACTOR_SYSTEM,
            actor_role=ACTOR_SYSTEM,
        )

    clear_cart_lines(order.tenant_id, order.user_id)
    db.session.commit()

    return FinalizeResult(payment=find_payment(reference, tenant_id), order=order, idempotent=False)


def finalize_successful_payment(
    reference: str,
    metadata: dict | None = None,
    *,
    tenant_id: int | None = None,
    notifications=None,
) -> FinalizeResult:
    """
    Convert a confirmed gateway payment into committed order/stock state.

    Safe to call any number of times, concurrently, for the same
    reference: exactly one call applies the mutation, every other call
    reports idempotent=True.
    """
    try:
        result = run_with_retry(lambda: _apply_finalize(reference, metadata or {}, tenant_id))
    except Exception:
        db.session.rollback()
        raise

    if result.idempotent:
        current_app.logger.info("Finalize replay for %s ignored (already confirmed)", reference)
        return result

    current_app.logger.info(
        "Payment %s confirmed: order_ref=%s source=%s",
        reference, result.order.order_ref, (metadata or {}).get("source"),
    )
    try:
        notify_order_status(result.order, ORDER_STATUS_PAID, note=NOTE_PAYMENT_CONFIRMED, notifications=notifications)
    except Exception:
        current_app.logger.exception("Failed to enqueue paid notification for %s", reference)
    return result


# =============================================================================
# TRIGGER ADAPTERS
# =============================================================================

def finalize_from_webhook(event: dict, *, notifications=None) -> FinalizeResult | None:
    """
    Apply a verified Paystack webhook event.

    Returns None for events other than charge.success. The tenant is taken
    from the transaction metadata when present.
    """
    if not isinstance(event, dict):
        raise ValidationError("Invalid webhook payload")
    if event.get("event") != "charge.success":
        return None

    data = event.get("data") or {}
    reference = data.get("reference") if isinstance(data, dict) else None
    if not reference:
        raise ValidationError("Missing payment reference")

    tenant_id = None
    metadata = data.get("metadata")
    if isinstance(metadata, dict) and metadata.get("tenant_id") is not None:
        try:
            tenant_id = coerce_int(metadata["tenant_id"], "tenant_id")
        except ValidationError:
            tenant_id = None

    return finalize_successful_payment(
        str(reference),
        {
            "source": SOURCE_WEBHOOK,
            "gateway_response": data.get("gateway_response"),
            "paid_at": data.get("paid_at"),
        },
        tenant_id=tenant_id,
        notifications=notifications,
    )


def finalize_from_callback(reference: str, *, gateway, notifications=None) -> FinalizeResult | None:
    """Verify with the gateway, then finalize. None when the gateway does not report success."""
    verified = gateway.verify_transaction(reference)
    if not verified.is_success:
        current_app.logger.info("Callback for %s: gateway status %s", reference, verified.status)
        return None

    return finalize_successful_payment(
        reference,
        {
            "source": SOURCE_CALLBACK,
            "gateway_response": verified.gateway_response,
            "paid_at": verified.paid_at,
        },
        notifications=notifications,
    )


def refresh_payment_status(tenant_id: int, reference: str, *, gateway, notifications=None) -> Payment:
    """
    Status poll. Re-verifies a not-yet-successful payment with the gateway
    and finalizes it if the gateway now reports success.

    Verification or finalize failures are logged and the last known
    payment state is returned.
    """
    payment = find_payment(reference, tenant_id)
    if payment.status == PAYMENT_STATUS_SUCCESS:
        return payment

    try:
        verified = gateway.verify_transaction(reference)
        if verified.is_success:
            finalize_successful_payment(
                reference,
                {
                    "source": SOURCE_STATUS_POLL,
                    "gateway_response": verified.gateway_response,
                    "paid_at": verified.paid_at,
                },
                tenant_id=tenant_id,
                notifications=notifications,
            )
    except CommerceError as exc:
        db.session.rollback()
        current_app.logger.warning("Status poll could not confirm %s: %s", reference, exc.message)

    return find_payment(reference, tenant_id)


def get_payment_order(tenant_id: int, reference: str, *, user) -> tuple[Payment, Order]:
    """Payment and its order. Customers may only see their own."""
    payment = find_payment(reference, tenant_id)
    if user.role == ROLE_CUSTOMER and payment.user_id != user.id:
        raise Forbidden("Order access denied")

    order = db.session.get(Order, payment.order_id)
    if order is None:
        raise NotFound("Order not found")
    return payment, order
