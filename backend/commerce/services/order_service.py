# Overview: Order state machine, admin transitions, carrier tracking updates and order queries.

"""
Order Lifecycle

    pending    -> processing | shipped | cancelled
    processing -> shipped | cancelled
    paid       -> processing | shipped | cancelled
    shipped    -> delivered
    delivered, cancelled: terminal

`pending -> paid` is not an admin transition: only checkout finalize moves
an order into `paid`, after the payment has been confirmed.

A same-state request is accepted as a no-op: nothing is appended to the
timeline and nothing is notified (a supplied tracking number is still
stored). Anything else outside the table raises InvalidTransition and
leaves the order untouched.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models import Order, OrderStatusEvent, TrackingEvent
from ..models.orders import (
    CARRIER_STATUSES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUSES,
)
from ..validation import clean_choice, clean_email, clean_text, coerce_int
from commerce.time_utils import parse_iso_datetime, to_utc_z, utcnow
from .directory_service import find_customer_by_email, find_customer_contact
from .notification_service import NOTIFIABLE_ORDER_STATUSES


ALLOWED_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_PROCESSING, ORDER_STATUS_SHIPPED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_PROCESSING: {ORDER_STATUS_SHIPPED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_PAID: {ORDER_STATUS_PROCESSING, ORDER_STATUS_SHIPPED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_SHIPPED: {ORDER_STATUS_DELIVERED},
    ORDER_STATUS_DELIVERED: set(),
    ORDER_STATUS_CANCELLED: set(),
}

ACTOR_SYSTEM = "system"

NOTE_MAX_LENGTH = 240
TRACKING_NUMBER_MIN_LENGTH = 3

# Carrier statuses that carry a usable tracking number
CARRIER_MOVING_STATUSES = ("in_transit", "out_for_delivery", "delivered")


def can_transition(current: str, target: str) -> bool:
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, set())


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(f"Invalid transition from {current} to {target}")


def append_timeline_event(
    order: Order,
    status: str,
    note: str,
    *,
    actor: str = ACTOR_SYSTEM,
    tracking_number: str | None = None,
) -> OrderStatusEvent:
    """Append to the order timeline in the caller's transaction."""
    event = OrderStatusEvent(
        status=status,
        note=note,
        tracking_number=tracking_number,
        actor=actor,
        at=utcnow(),
    )
    order.timeline.append(event)
    return event


def get_order(tenant_id: int, order_id) -> Order:
    order_id = coerce_int(order_id, "order_id")
    order = db.session.query(Order).filter_by(id=order_id, tenant_id=tenant_id).first()
    if order is None:
        raise NotFound("Order not found")
    return order


def notify_order_status(order: Order, status: str, *, note: str | None, notifications) -> bool:
    """Best-effort order-status email. Call after the status change has committed."""
    if notifications is None or status not in NOTIFIABLE_ORDER_STATUSES:
        return False

    contact = find_customer_contact(order.user_id)
    if contact is None:
        return False

    result = notifications.enqueue_order_status(
        tenant_id=order.tenant_id,
        user_id=order.user_id,
        email=contact.email,
        customer_name=contact.full_name,
        order_id=order.id,
        order_ref=order.order_ref,
        status=status,
        tracking_number=order.tracking_number,
        note=note,
    )
    return result.enqueued


# =============================================================================
# ADMIN TRANSITIONS
# =============================================================================

def update_order_status(
    tenant_id: int,
    order_id,
    status: str,
    *,
    tracking_number: str | None = None,
    note: str | None = None,
    actor: str = "admin",
    notifications=None,
) -> Order:
    """
    Move an order to `status` on behalf of a back-office user.

    Shipping requires a tracking number, supplied now or already on file.
    Moves into paid/shipped/delivered notify the customer after commit.
    """
    status = clean_choice(status, "status", ORDER_STATUSES)
    tracking_number = clean_text(tracking_number, "tracking_number", min_length=TRACKING_NUMBER_MIN_LENGTH, max_length=128) or None
    note = clean_text(note, "note", max_length=NOTE_MAX_LENGTH) or None

    order = get_order(tenant_id, order_id)
    ensure_transition(order.status, status)

    if order.status == status:
        if tracking_number and tracking_number != order.tracking_number:
            order.tracking_number = tracking_number
            db.session.commit()
        return order

    if status == ORDER_STATUS_SHIPPED and not tracking_number and not order.tracking_number:
        raise ValidationError("Tracking number is required when shipping an order")

    if tracking_number:
        order.tracking_number = tracking_number

    timeline_note = note or f"Order marked as {status}"
    order.status = status
    append_timeline_event(
        order,
        status,
        timeline_note,
        actor=actor,
        tracking_number=order.tracking_number,
    )

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    notify_order_status(order, status, note=timeline_note, notifications=notifications)
    return order


def record_tracking_event(
    tenant_id: int,
    order_id,
    payload: dict,
    *,
    actor: str = "admin",
    notifications=None,
) -> TrackingEvent:
    """
    Store a carrier update and fold it into the order.

    in_transit / out_for_delivery / delivered set the order's tracking
    number to the carrier id and advance the order (delivered -> delivered,
    otherwise processing/paid -> shipped) when the transition table allows
    it; a timeline entry is appended either way. Other carrier statuses are
    stored without touching the order.
    """
    provider = clean_text(payload.get("provider"), "provider", min_length=2, max_length=64)
    external_id = clean_text(payload.get("external_tracking_id"), "external_tracking_id", min_length=2, max_length=128)
    carrier_status = clean_choice(payload.get("status"), "status", CARRIER_STATUSES)
    location = clean_text(payload.get("location"), "location", min_length=2, max_length=255)
    message = clean_text(payload.get("message"), "message", min_length=2, max_length=255)
    if not provider or not external_id:
        raise ValidationError("provider and external_tracking_id are required")

    event_at = utcnow()
    if payload.get("event_at"):
        try:
            event_at = parse_iso_datetime(payload["event_at"])
        except (AttributeError, TypeError, ValueError):
            raise ValidationError("event_at must be an ISO-8601 datetime")

    order = get_order(tenant_id, order_id)

    event = TrackingEvent(
        tenant_id=tenant_id,
        order_id=order.id,
        provider=provider,
        external_tracking_id=external_id,
        status=carrier_status,
        location=location,
        message=message,
        event_at=event_at,
        raw=payload.get("raw"),
    )
    db.session.add(event)

    previous_status = order.status
    if carrier_status in CARRIER_MOVING_STATUSES:
        order.tracking_number = external_id

        target = previous_status
        if carrier_status == "delivered":
            target = ORDER_STATUS_DELIVERED
        elif previous_status in (ORDER_STATUS_PROCESSING, ORDER_STATUS_PAID):
            target = ORDER_STATUS_SHIPPED

        if can_transition(previous_status, target):
            order.status = target

        append_timeline_event(
            order,
            order.status,
            message or f"Carrier update: {carrier_status}",
            actor=actor,
            tracking_number=order.tracking_number,
        )

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if order.status != previous_status and order.status in (ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED):
        notify_order_status(order, order.status, note=message, notifications=notifications)
    return event


def list_tracking_events(tenant_id: int, order_id) -> list[TrackingEvent]:
    order = get_order(tenant_id, order_id)
    return (
        db.session.query(TrackingEvent)
        .filter_by(tenant_id=tenant_id, order_id=order.id)
        .order_by(TrackingEvent.event_at.desc(), TrackingEvent.id.desc())
        .all()
    )


# =============================================================================
# CUSTOMER QUERIES
# =============================================================================

def list_customer_orders(tenant_id: int, user_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter_by(tenant_id=tenant_id, user_id=user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def get_customer_order(tenant_id: int, user_id: int, order_id) -> Order:
    order = get_order(tenant_id, order_id)
    if order.user_id != user_id:
        raise NotFound("Order not found")
    return order


def track_order(tenant_id: int, order_ref, email) -> Order:
    """
    Public order lookup by reference plus the customer's email.

    Unknown email and unknown reference answer the same NotFound.
    """
    order_ref = clean_text(order_ref, "order_ref")
    if not order_ref or email is None or not str(email).strip():
        raise ValidationError("order_ref and email are required")
    email = clean_email(email)

    customer = find_customer_by_email(tenant_id, email)
    if customer is None:
        raise NotFound("Order not found")

    order = (
        db.session.query(Order)
        .filter(
            Order.tenant_id == tenant_id,
            Order.user_id == customer.id,
            func.lower(Order.order_ref) == order_ref.lower(),
        )
        .first()
    )
    if order is None:
        raise NotFound("Order not found")
    return order


def tracking_view(order: Order) -> dict:
    return {
        "id": order.id,
        "order_ref": order.order_ref,
        "status": order.status,
        "tracking_number": order.tracking_number,
        "created_at": to_utc_z(order.created_at),
        "timeline": [event.to_dict() for event in order.timeline],
    }
