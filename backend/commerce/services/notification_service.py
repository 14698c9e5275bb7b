# Overview: Durable notification queue (enqueue side) and its dispatcher (worker side).

"""
Notification Queue & Dispatcher

Jobs are rows in `notification_jobs`. The request path enqueues after its
own transaction has committed; the worker (`flask notifications work`)
claims due rows, renders an email per job kind and hands it to the mail
transport.

DELIVERY CONTRACT:
- enqueue never raises; it reports EnqueueResult(enqueued=False, reason)
- a failed delivery is retried with exponential backoff until the kind's
  attempt budget is spent, then the job is marked `failed` and kept
- an unconfigured mail transport logs the message and completes the job
- a claimed job holds a lease (next_attempt_at); a worker that dies
  mid-delivery leaves the row claimable again once the lease lapses, so
  delivery is at-least-once; a lapsed claim on its last attempt is marked
  `failed`
"""

from __future__ import annotations

import html
import smtplib
from dataclasses import dataclass
from datetime import timedelta
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app
from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import NotificationJob
from ..models.notifications import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_QUEUED,
)
from commerce.time_utils import utcnow


KIND_ORDER_STATUS = "order-status"
KIND_OTP = "otp"
KIND_WISHLIST_STOCK = "wishlist-stock"

NOTIFIABLE_ORDER_STATUSES = ("paid", "shipped", "delivered")

OTP_PURPOSES = {
    "admin_register": "Admin Registration",
    "admin_login": "Admin Login",
    "admin_reset": "Password Reset",
    "customer_register": "Customer Registration",
    "customer_reset": "Customer Password Reset",
}

STOCK_ALERT_LOW = "low_stock"
STOCK_ALERT_RESTOCK = "restock"

CLAIM_LEASE = timedelta(minutes=5)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    backoff_seconds: float

    def delay_for(self, attempts: int) -> timedelta:
        return timedelta(seconds=self.backoff_seconds * (2 ** max(attempts - 1, 0)))


# A missed shipping notice cannot be recovered by the customer; a missed
# OTP or stock alert can.
RETRY_POLICIES = {
    KIND_ORDER_STATUS: RetryPolicy(max_attempts=5, backoff_seconds=2.0),
    KIND_OTP: RetryPolicy(max_attempts=3, backoff_seconds=2.0),
    KIND_WISHLIST_STOCK: RetryPolicy(max_attempts=3, backoff_seconds=2.0),
}


@dataclass(frozen=True)
class EnqueueResult:
    enqueued: bool
    reason: str | None = None
    job_id: int | None = None


# =============================================================================
# ENQUEUE SIDE
# =============================================================================

class NotificationQueue:
    """
    Producer handle for the notification queue.

    Built once per app (app.extensions["notification_queue"]) and passed
    into services that emit notifications. Jobs are written through a
    separate session on db.engine, so an enqueue neither commits nor rolls
    back the caller's pending work.
    """

    def enqueue(self, kind: str, payload: dict) -> EnqueueResult:
        policy = RETRY_POLICIES.get(kind)
        if policy is None:
            current_app.logger.warning("Refusing to enqueue unknown notification kind %r", kind)
            return EnqueueResult(enqueued=False, reason=f"Unknown notification kind: {kind}")

        try:
            with Session(db.engine) as session:
                job = NotificationJob(
                    kind=kind,
                    payload=payload,
                    status=JOB_STATUS_QUEUED,
                    attempts=0,
                    max_attempts=policy.max_attempts,
                    backoff_seconds=policy.backoff_seconds,
                    next_attempt_at=utcnow(),
                )
                session.add(job)
                session.commit()
                job_id = job.id
        except Exception as exc:
            current_app.logger.exception("Failed to enqueue %s notification", kind)
            return EnqueueResult(enqueued=False, reason=str(exc))

        return EnqueueResult(enqueued=True, job_id=job_id)

    def enqueue_order_status(
        self,
        *,
        tenant_id: int,
        user_id: int,
        email: str,
        customer_name: str,
        order_id: int,
        order_ref: str,
        status: str,
        tracking_number: str | None = None,
        note: str | None = None,
    ) -> EnqueueResult:
        if status not in NOTIFIABLE_ORDER_STATUSES:
            return EnqueueResult(enqueued=False, reason=f"Status {status} does not notify")
        return self.enqueue(
            KIND_ORDER_STATUS,
            {
                "tenant_id": tenant_id,
                "user_id": user_id,
                "email": email,
                "customer_name": customer_name,
                "order_id": order_id,
                "order_ref": order_ref,
                "status": status,
                "tracking_number": tracking_number,
                "note": note,
            },
        )

    def enqueue_otp(
        self,
        *,
        email: str,
        purpose: str,
        code: str,
        expires_in_minutes: int,
        first_name: str | None = None,
    ) -> EnqueueResult:
        if purpose not in OTP_PURPOSES:
            return EnqueueResult(enqueued=False, reason=f"Unknown OTP purpose: {purpose}")
        return self.enqueue(
            KIND_OTP,
            {
                "email": email,
                "first_name": first_name,
                "purpose": purpose,
                "code": code,
                "expires_in_minutes": expires_in_minutes,
            },
        )

    def enqueue_wishlist_stock(
        self,
        *,
        email: str,
        product_name: str,
        alert_type: str,
        current_stock: int,
        first_name: str | None = None,
    ) -> EnqueueResult:
        if alert_type not in (STOCK_ALERT_LOW, STOCK_ALERT_RESTOCK):
            return EnqueueResult(enqueued=False, reason=f"Unknown stock alert type: {alert_type}")
        return self.enqueue(
            KIND_WISHLIST_STOCK,
            {
                "email": email,
                "first_name": first_name,
                "product_name": product_name,
                "type": alert_type,
                "current_stock": current_stock,
            },
        )


# =============================================================================
# RENDERING
# =============================================================================

@dataclass(frozen=True)
class RenderedEmail:
    to: str
    subject: str
    text: str
    html: str


def _wrap_html(store_name: str, body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; color: #172033; line-height: 1.5;">'
        f'<h2 style="margin: 0 0 12px;">{html.escape(store_name)}</h2>'
        f"{body}"
        "</div>"
    )


def render_order_status(payload: dict, store_name: str) -> RenderedEmail:
    status = payload["status"]
    order_ref = payload["order_ref"]
    name = payload.get("customer_name") or "Customer"
    tracking = payload.get("tracking_number")
    note = payload.get("note")

    subjects = {
        "paid": f"Payment Confirmed - {order_ref}",
        "shipped": f"Order Shipped - {order_ref}",
        "delivered": f"Order Delivered - {order_ref}",
    }
    intros = {
        "paid": "Your payment has been confirmed and we are preparing your order.",
        "shipped": "Great news. Your order has been shipped.",
        "delivered": "Your order has been marked as delivered.",
    }
    if status not in subjects:
        raise ValueError(f"Order status {status!r} has no notification template")

    text_lines = [f"Hi {name},", "", intros[status], f"Order Reference: {order_ref}"]
    if tracking:
        text_lines.append(f"Tracking Number: {tracking}")
    if note:
        text_lines.append(f"Update: {note}")
    text_lines += ["", f"Thank you for shopping with {store_name}."]

    body = (
        f"<p>Hi {html.escape(name)},</p>"
        f"<p>{intros[status]}</p>"
        f"<p><strong>Order Reference:</strong> {html.escape(order_ref)}</p>"
    )
    if tracking:
        body += f"<p><strong>Tracking Number:</strong> {html.escape(tracking)}</p>"
    if note:
        body += f"<p><strong>Update:</strong> {html.escape(note)}</p>"
    body += f"<p>Thank you for shopping with {html.escape(store_name)}.</p>"

    return RenderedEmail(
        to=payload["email"],
        subject=subjects[status],
        text="\n".join(text_lines),
        html=_wrap_html(store_name, body),
    )


def render_otp(payload: dict, store_name: str) -> RenderedEmail:
    label = OTP_PURPOSES.get(payload.get("purpose"), "Password Reset")
    name = payload.get("first_name") or "Admin"
    code = str(payload["code"])
    minutes = payload["expires_in_minutes"]

    text = "\n".join([
        f"Hi {name},",
        "",
        f"Your OTP for {label.lower()} is: {code}",
        f"This code expires in {minutes} minutes.",
        "",
        "If you did not request this, please ignore this email.",
    ])
    body = (
        f"<p>Hi {html.escape(name)},</p>"
        f"<p>Your OTP for <strong>{label.lower()}</strong> is:</p>"
        f'<p style="font-size: 28px; font-weight: 700; letter-spacing: 6px;">{html.escape(code)}</p>'
        f"<p>This code expires in {minutes} minutes.</p>"
        "<p>If you did not request this, please ignore this email.</p>"
    )
    return RenderedEmail(
        to=payload["email"],
        subject=f"{store_name} {label} OTP",
        text=text,
        html=_wrap_html(store_name, body),
    )


def render_wishlist_stock(payload: dict, store_name: str) -> RenderedEmail:
    name = payload.get("first_name") or "Customer"
    product = payload["product_name"]
    stock = payload["current_stock"]

    if payload.get("type") == STOCK_ALERT_LOW:
        subject = f"Low stock: {product}"
        text = f"Hi {name}, {product} is running low ({stock} left)."
    else:
        subject = f"Restocked: {product}"
        text = f"Hi {name}, {product} is back in stock ({stock} available)."

    return RenderedEmail(
        to=payload["email"],
        subject=subject,
        text=text,
        html=_wrap_html(store_name, f"<p>{html.escape(text)}</p>"),
    )


RENDERERS = {
    KIND_ORDER_STATUS: render_order_status,
    KIND_OTP: render_otp,
    KIND_WISHLIST_STOCK: render_wishlist_stock,
}


# =============================================================================
# TRANSPORT
# =============================================================================

class SmtpTransport:
    """Thin smtplib sender. One connection per message."""

    def __init__(self, *, host: str, port: int, user: str, password: str, secure: bool, sender: str, timeout: float = 30):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.secure = secure
        self.sender = sender
        self.timeout = timeout

    def send(self, message: RenderedEmail) -> None:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.attach(MIMEText(message.text, "plain", "utf-8"))
        msg.attach(MIMEText(message.html, "html", "utf-8"))

        smtp_cls = smtplib.SMTP_SSL if self.secure else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=self.timeout) as smtp:
            if not self.secure:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
            smtp.login(self.user, self.password)
            smtp.sendmail(self.sender, [message.to], msg.as_string())


def build_transport(config) -> SmtpTransport | None:
    """SMTP transport from app config, or None when any credential is missing."""
    host = config.get("SMTP_HOST")
    port = config.get("SMTP_PORT")
    user = config.get("SMTP_USER")
    password = config.get("SMTP_PASS")
    if not (host and port and user and password):
        return None
    return SmtpTransport(
        host=host,
        port=int(port),
        user=user,
        password=password,
        secure=bool(config.get("SMTP_SECURE", True)),
        sender=config.get("EMAIL_FROM"),
    )


# =============================================================================
# DISPATCH SIDE
# =============================================================================

@dataclass
class DispatchSummary:
    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {
            "claimed": self.claimed,
            "completed": self.completed,
            "retried": self.retried,
            "failed": self.failed,
        }


class NotificationDispatcher:
    """
    Consumer side of the queue. Call `run_pending` inside an app context.

    `transport` is anything with `send(RenderedEmail)`; None means log-only.
    """

    def __init__(self, transport=None, *, store_name: str = "Shop with Seye", clock=utcnow):
        self.transport = transport
        self.store_name = store_name
        self.clock = clock

    def claim_due(self, limit: int = 20) -> list[NotificationJob]:
        """
        Claim up to `limit` due jobs.

        Each row is claimed with a guarded UPDATE so two workers never hold
        the same job: only the worker whose UPDATE still sees the row as due
        gets rowcount 1. Claiming counts as an attempt, so a lapsed claim
        that already used the last attempt is marked failed instead.
        """
        now = self.clock()
        self.fail_exhausted_claims(now)

        claimable = or_(
            NotificationJob.status == JOB_STATUS_QUEUED,
            and_(
                NotificationJob.status == JOB_STATUS_PROCESSING,
                NotificationJob.attempts < NotificationJob.max_attempts,
            ),
        )
        candidates = (
            db.session.query(NotificationJob.id)
            .filter(claimable, NotificationJob.next_attempt_at <= now)
            .order_by(NotificationJob.next_attempt_at, NotificationJob.id)
            .limit(limit)
            .all()
        )

        claimed_ids = []
        for (job_id,) in candidates:
            result = db.session.execute(
                update(NotificationJob)
                .where(
                    NotificationJob.id == job_id,
                    claimable,
                    NotificationJob.next_attempt_at <= now,
                )
                .values(
                    status=JOB_STATUS_PROCESSING,
                    attempts=NotificationJob.attempts + 1,
                    next_attempt_at=now + CLAIM_LEASE,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                claimed_ids.append(job_id)
        db.session.commit()

        if not claimed_ids:
            return []
        return (
            db.session.query(NotificationJob)
            .filter(NotificationJob.id.in_(claimed_ids))
            .order_by(NotificationJob.id)
            .populate_existing()
            .all()
        )

    def fail_exhausted_claims(self, now) -> int:
        """Abandoned claims with no attempts left. Returns rows marked failed."""
        result = db.session.execute(
            update(NotificationJob)
            .where(
                NotificationJob.status == JOB_STATUS_PROCESSING,
                NotificationJob.next_attempt_at <= now,
                NotificationJob.attempts >= NotificationJob.max_attempts,
            )
            .values(
                status=JOB_STATUS_FAILED,
                last_error="Claim lease expired on the final attempt",
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        if result.rowcount:
            current_app.logger.error("Marked %s abandoned notification job(s) failed", result.rowcount)
        return result.rowcount

    def deliver(self, job: NotificationJob) -> None:
        """Render and send one job. Raises on delivery failure."""
        renderer = RENDERERS.get(job.kind)
        if renderer is None:
            current_app.logger.warning("Skipping unknown notification job %s (kind=%r)", job.id, job.kind)
            return

        message = renderer(dict(job.payload or {}), self.store_name)

        if self.transport is None:
            current_app.logger.warning(
                "SMTP not configured. Logging %s notification instead: to=%s subject=%r payload=%s",
                job.kind, message.to, message.subject, job.payload,
            )
            return

        self.transport.send(message)
        current_app.logger.info("Notification %s sent: kind=%s to=%s", job.id, job.kind, message.to)

    def run_pending(self, limit: int = 20) -> DispatchSummary:
        summary = DispatchSummary()
        for job in self.claim_due(limit):
            summary.claimed += 1
            try:
                self.deliver(job)
            except Exception as exc:
                self._record_failure(job, exc, summary)
            else:
                job.status = JOB_STATUS_COMPLETED
                job.completed_at = self.clock()
                job.last_error = None
                summary.completed += 1
            db.session.commit()
        return summary

    def _record_failure(self, job: NotificationJob, exc: Exception, summary: DispatchSummary) -> None:
        job.last_error = f"{type(exc).__name__}: {exc}"[:2000]
        if job.attempts >= job.max_attempts:
            job.status = JOB_STATUS_FAILED
            summary.failed += 1
            current_app.logger.error(
                "Notification %s failed permanently after %s attempts: %s",
                job.id, job.attempts, job.last_error,
            )
            return

        policy = RetryPolicy(max_attempts=job.max_attempts, backoff_seconds=job.backoff_seconds)
        job.status = JOB_STATUS_QUEUED
        job.next_attempt_at = self.clock() + policy.delay_for(job.attempts)
        summary.retried += 1
        current_app.logger.warning(
            "Notification %s attempt %s/%s failed, retrying at %s: %s",
            job.id, job.attempts, job.max_attempts, job.next_attempt_at, job.last_error,
        )


def list_jobs(*, status: str | None = None, limit: int = 50) -> list[NotificationJob]:
    query = db.session.query(NotificationJob)
    if status:
        query = query.filter(NotificationJob.status == status)
    return query.order_by(NotificationJob.id.desc()).limit(limit).all()
