# Overview: Customer notification inbox (stock alert entries, listing, mark-read).

from __future__ import annotations

from ..extensions import db
from ..errors import NotFound
from ..models import CustomerNotification
from .notification_service import STOCK_ALERT_LOW
from commerce.time_utils import utcnow


INBOX_PAGE_SIZE = 50


def stock_alert_entry(*, tenant_id: int, user_id: int, product_id: int, product_name: str, alert_type: str, current_stock: int) -> CustomerNotification:
    """Build (and add to the session) one inbox row for a stock alert. Caller commits."""
    if alert_type == STOCK_ALERT_LOW:
        title = "Low Stock Alert"
        message = f"{product_name} is running low ({current_stock} left)."
    else:
        title = "Back in Stock"
        message = f"{product_name} is back in stock ({current_stock} available)."

    entry = CustomerNotification(
        tenant_id=tenant_id,
        user_id=user_id,
        product_id=product_id,
        type=alert_type,
        title=title,
        message=message,
    )
    db.session.add(entry)
    return entry


def list_customer_notifications(tenant_id: int, user_id: int, limit: int = INBOX_PAGE_SIZE) -> list[CustomerNotification]:
    """Newest first."""
    return (
        db.session.query(CustomerNotification)
        .filter_by(tenant_id=tenant_id, user_id=user_id)
        .order_by(CustomerNotification.created_at.desc(), CustomerNotification.id.desc())
        .limit(limit)
        .all()
    )


def mark_notification_read(tenant_id: int, user_id: int, notification_id) -> CustomerNotification:
    """Set read_at. Marking an already-read entry keeps the first read time."""
    entry = (
        db.session.query(CustomerNotification)
        .filter_by(id=notification_id, tenant_id=tenant_id, user_id=user_id)
        .first()
    )
    if entry is None:
        raise NotFound("Notification not found")

    if entry.read_at is None:
        entry.read_at = utcnow()
        db.session.commit()
    return entry
