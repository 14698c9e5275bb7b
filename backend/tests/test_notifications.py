# Overview: Pytest coverage for the notification queue, rendering and the dispatcher's retry policy.

from datetime import timedelta

import pytest

from commerce.models import NotificationJob, Tenant
from commerce.models.notifications import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PROCESSING,
    JOB_STATUS_QUEUED,
)
from commerce.services import notification_service
from commerce.services.notification_service import (
    CLAIM_LEASE,
    KIND_ORDER_STATUS,
    KIND_OTP,
    NotificationDispatcher,
    RetryPolicy,
    build_transport,
    render_order_status,
    render_otp,
    render_wishlist_stock,
)
from commerce.time_utils import utcnow


class RecordingTransport:
    def __init__(self, failures=0):
        self.failures = failures
        self.sent = []

    def send(self, message):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("SMTP connection refused")
        self.sent.append(message)


class FrozenClock:
    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def enqueue_shipped(queue, **overrides):
    kwargs = {
        "tenant_id": 1,
        "user_id": 1,
        "email": "ada@example.com",
        "customer_name": "Ada Obi",
        "order_id": 1,
        "order_ref": "SWS-1-ABCDEF",
        "status": "shipped",
        "tracking_number": "GIG-1",
    }
    kwargs.update(overrides)
    return queue.enqueue_order_status(**kwargs)


class TestEnqueue:
    def test_order_status_job_queued(self, db_session, notifications):
        result = enqueue_shipped(notifications)

        assert result.enqueued
        job = db_session.get(NotificationJob, result.job_id)
        assert job.kind == KIND_ORDER_STATUS
        assert job.status == JOB_STATUS_QUEUED
        assert job.attempts == 0
        assert job.max_attempts == 5
        assert job.payload["tracking_number"] == "GIG-1"

    def test_non_notifiable_status_skipped(self, db_session, notifications):
        result = enqueue_shipped(notifications, status="processing")
        assert not result.enqueued
        assert db_session.query(NotificationJob).count() == 0

    def test_unknown_kind_refused(self, db_session, notifications):
        result = notifications.enqueue("sms", {"to": "0803"})
        assert not result.enqueued
        assert "Unknown notification kind" in result.reason

    def test_otp_job(self, db_session, notifications):
        result = notifications.enqueue_otp(
            email="owner@sws.local", purpose="admin_login", code="123456", expires_in_minutes=10
        )
        assert result.enqueued
        job = db_session.get(NotificationJob, result.job_id)
        assert job.kind == KIND_OTP
        assert job.max_attempts == 3

    def test_enqueue_does_not_commit_callers_pending_work(self, db_session, notifications):
        db_session.add(Tenant(name="Draft Store", slug="draft", is_active=True))

        result = notifications.enqueue_otp(
            email="owner@sws.local", purpose="admin_login", code="123456", expires_in_minutes=10
        )
        db_session.rollback()

        assert result.enqueued
        assert db_session.query(Tenant).filter_by(slug="draft").count() == 0
        assert db_session.get(NotificationJob, result.job_id).kind == KIND_OTP

    def test_unknown_otp_purpose_refused(self, db_session, notifications):
        result = notifications.enqueue_otp(email="a@b.co", purpose="launch", code="1", expires_in_minutes=1)
        assert not result.enqueued


class TestRendering:
    def test_order_status_email(self):
        message = render_order_status({
            "email": "ada@example.com",
            "customer_name": "Ada <Obi>",
            "order_ref": "SWS-1-ABCDEF",
            "status": "shipped",
            "tracking_number": "GIG-1",
            "note": "On its way",
        }, "Shop with Seye")

        assert message.to == "ada@example.com"
        assert message.subject == "Order Shipped - SWS-1-ABCDEF"
        assert "Tracking Number: GIG-1" in message.text
        assert "Update: On its way" in message.text
        assert "Ada &lt;Obi&gt;" in message.html

    def test_otp_email(self):
        message = render_otp({
            "email": "owner@sws.local",
            "purpose": "admin_reset",
            "code": "654321",
            "expires_in_minutes": 10,
        }, "Shop with Seye")
        assert message.subject == "Shop with Seye Password Reset OTP"
        assert "654321" in message.text
        assert "expires in 10 minutes" in message.text

    def test_wishlist_emails(self):
        low = render_wishlist_stock({
            "email": "ada@example.com", "product_name": "Classic Tee", "type": "low_stock", "current_stock": 2,
        }, "Shop with Seye")
        restock = render_wishlist_stock({
            "email": "ada@example.com", "product_name": "Classic Tee", "type": "restock", "current_stock": 7,
        }, "Shop with Seye")
        assert low.subject == "Low stock: Classic Tee"
        assert restock.subject == "Restocked: Classic Tee"

    def test_unknown_order_status_has_no_template(self):
        with pytest.raises(ValueError):
            render_order_status({"email": "a@b.co", "order_ref": "X", "status": "processing"}, "Shop")


class TestRetryPolicy:
    def test_exponential_backoff(self):
        policy = RetryPolicy(max_attempts=5, backoff_seconds=2.0)
        assert policy.delay_for(1) == timedelta(seconds=2)
        assert policy.delay_for(2) == timedelta(seconds=4)
        assert policy.delay_for(3) == timedelta(seconds=8)


class TestDispatcher:
    def test_delivers_and_completes(self, db_session, notifications):
        enqueue_shipped(notifications)
        transport = RecordingTransport()

        summary = NotificationDispatcher(transport).run_pending()

        assert summary.to_dict() == {"claimed": 1, "completed": 1, "retried": 0, "failed": 0}
        assert transport.sent[0].subject == "Order Shipped - SWS-1-ABCDEF"
        job = db_session.query(NotificationJob).one()
        assert job.status == JOB_STATUS_COMPLETED
        assert job.attempts == 1
        assert job.completed_at is not None

    def test_failure_is_retried_with_backoff(self, db_session, notifications):
        enqueue_shipped(notifications)
        clock = FrozenClock()
        dispatcher = NotificationDispatcher(RecordingTransport(failures=1), clock=clock)

        summary = dispatcher.run_pending()

        assert summary.retried == 1
        job = db_session.query(NotificationJob).one()
        assert job.status == JOB_STATUS_QUEUED
        assert job.attempts == 1
        assert "SMTP connection refused" in job.last_error
        assert job.next_attempt_at == clock.now + timedelta(seconds=2)

        # Not due yet
        assert dispatcher.run_pending().claimed == 0

        clock.advance(seconds=2)
        summary = dispatcher.run_pending()
        assert summary.completed == 1
        assert db_session.query(NotificationJob).one().status == JOB_STATUS_COMPLETED

    def test_exhausted_attempts_mark_failed(self, db_session, notifications):
        notifications.enqueue_otp(email="owner@sws.local", purpose="admin_login", code="123456", expires_in_minutes=10)
        clock = FrozenClock()
        dispatcher = NotificationDispatcher(RecordingTransport(failures=10), clock=clock)

        outcomes = []
        for _ in range(3):
            outcomes.append(dispatcher.run_pending().to_dict())
            clock.advance(minutes=1)

        assert [o["retried"] for o in outcomes] == [1, 1, 0]
        assert outcomes[-1]["failed"] == 1
        job = db_session.query(NotificationJob).one()
        assert job.status == JOB_STATUS_FAILED
        assert job.attempts == 3

        clock.advance(hours=1)
        assert dispatcher.run_pending().claimed == 0

    def test_no_transport_logs_and_completes(self, db_session, notifications):
        enqueue_shipped(notifications)

        summary = NotificationDispatcher(None).run_pending()

        assert summary.completed == 1
        assert db_session.query(NotificationJob).one().status == JOB_STATUS_COMPLETED

    def test_unknown_kind_job_completes_without_sending(self, db_session):
        db_session.add(NotificationJob(
            kind="legacy",
            payload={},
            status=JOB_STATUS_QUEUED,
            attempts=0,
            max_attempts=1,
            backoff_seconds=1.0,
            next_attempt_at=utcnow(),
        ))
        db_session.commit()
        transport = RecordingTransport()

        summary = NotificationDispatcher(transport).run_pending()

        assert summary.completed == 1
        assert transport.sent == []

    def test_claim_holds_lease(self, db_session, notifications):
        enqueue_shipped(notifications)
        clock = FrozenClock()
        dispatcher = NotificationDispatcher(RecordingTransport(), clock=clock)

        claimed = dispatcher.claim_due()
        assert len(claimed) == 1
        assert claimed[0].status == JOB_STATUS_PROCESSING
        assert claimed[0].next_attempt_at == clock.now + CLAIM_LEASE

        # A second worker sees nothing while the lease holds
        assert dispatcher.claim_due() == []

        # An abandoned claim becomes claimable again once the lease lapses
        clock.advance(seconds=CLAIM_LEASE.total_seconds() + 1)
        reclaimed = dispatcher.claim_due()
        assert [job.id for job in reclaimed] == [claimed[0].id]
        assert reclaimed[0].attempts == 2

    def test_abandoned_claim_on_last_attempt_fails(self, db_session, notifications):
        notifications.enqueue_otp(email="owner@sws.local", purpose="admin_login", code="123456", expires_in_minutes=10)
        clock = FrozenClock()
        dispatcher = NotificationDispatcher(RecordingTransport(), clock=clock)

        # Worker crashes after every claim, so the lease always lapses
        for _ in range(3):
            assert len(dispatcher.claim_due()) == 1
            clock.advance(seconds=CLAIM_LEASE.total_seconds() + 1)

        assert dispatcher.claim_due() == []
        job = db_session.query(NotificationJob).one()
        assert job.status == JOB_STATUS_FAILED
        assert job.attempts == 3
        assert "lease expired" in job.last_error

    def test_batch_limit(self, db_session, notifications):
        for i in range(3):
            enqueue_shipped(notifications, order_id=i + 1)

        summary = NotificationDispatcher(RecordingTransport()).run_pending(limit=2)

        assert summary.claimed == 2
        assert db_session.query(NotificationJob).filter_by(status=JOB_STATUS_QUEUED).count() == 1

    def test_list_jobs_filters_by_status(self, db_session, notifications):
        enqueue_shipped(notifications)
        NotificationDispatcher(None).run_pending()
        enqueue_shipped(notifications, order_id=2)

        assert len(notification_service.list_jobs()) == 2
        assert len(notification_service.list_jobs(status=JOB_STATUS_QUEUED)) == 1


class TestBuildTransport:
    def test_missing_credentials_means_log_only(self):
        assert build_transport({"SMTP_HOST": "smtp.test", "SMTP_PORT": 465}) is None

    def test_complete_config(self):
        transport = build_transport({
            "SMTP_HOST": "smtp.test",
            "SMTP_PORT": "587",
            "SMTP_USER": "mailer",
            "SMTP_PASS": "secret",
            "SMTP_SECURE": False,
            "EMAIL_FROM": "Shop <no-reply@shop.test>",
        })
        assert transport.port == 587
        assert transport.secure is False
        assert transport.sender == "Shop <no-reply@shop.test>"
