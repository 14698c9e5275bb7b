# Overview: Pytest coverage for concurrent payment finalization against a file-backed SQLite database.

"""
Concurrency Tests

Each worker thread runs in its own application context, so it gets its own
SQLAlchemy session and connection. The database is a temporary SQLite
file because an in-memory database is private to one connection.

Proves that:
1. N concurrent confirmations of one reference apply exactly once
   (one stock decrement, one ledger row, one paid notification)
2. Two orders racing for the last unit: one is paid, the other gets
   StockConflict and keeps its payment initialized; stock never goes negative
"""

import threading

import pytest

from commerce import create_app
from commerce.errors import StockConflict
from commerce.extensions import db
from commerce.models import InventoryLedgerEntry, NotificationJob, Order, Payment, Product, Tenant, User, Variant
from commerce.models.auth import ROLE_CUSTOMER
from commerce.services import checkout_service

from conftest import TEST_CONFIG, FakeGateway, place_order


WORKERS = 8


@pytest.fixture
def file_app(tmp_path):
    config = dict(TEST_CONFIG)
    config.update({
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30, 'check_same_thread': False}},
    })
    app = create_app(config)
    app.extensions["payment_gateway"].close()
    app.extensions["payment_gateway"] = FakeGateway()

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def seed(app, *, stock, customers=1):
    """Tenant, customers and one variant. Returns (tenant_id, [customer_ids], variant_id)."""
    with app.app_context():
        tenant = Tenant(name="Shop with Seye", slug="sws", is_active=True)
        db.session.add(tenant)
        db.session.flush()

        users = []
        for i in range(customers):
            user = User(tenant_id=tenant.id, email=f"buyer{i}@example.com", first_name=f"Buyer{i}", role=ROLE_CUSTOMER)
            db.session.add(user)
            users.append(user)

        product = Product(tenant_id=tenant.id, slug="classic-tee", name="Classic Tee")
        product.variants.append(
            Variant(tenant_id=tenant.id, sku="TEE-M-BLK", size="M", color="Black", stock=stock, price_minor=15000)
        )
        db.session.add(product)
        db.session.commit()
        return tenant.id, [u.id for u in users], product.variants[0].id


def open_checkout(app, tenant_id, user_id, variant_id, quantity=1):
    with app.app_context():
        tenant = db.session.get(Tenant, tenant_id)
        user = db.session.get(User, user_id)
        variant = db.session.get(Variant, variant_id)
        session = place_order(tenant, user, variant, app.extensions["payment_gateway"], quantity=quantity)
        return session.payment_ref


def run_concurrently(app, references):
    """Finalize each reference in its own thread, released together. Returns per-thread outcomes."""
    barrier = threading.Barrier(len(references))
    outcomes = [None] * len(references)

    def worker(index, reference):
        with app.app_context():
            try:
                barrier.wait()
                result = checkout_service.finalize_successful_payment(
                    reference,
                    {"source": "webhook"},
                    notifications=app.extensions["notification_queue"],
                )
                outcomes[index] = "idempotent" if result.idempotent else "applied"
            except StockConflict:
                outcomes[index] = "stock_conflict"
            except Exception as exc:
                outcomes[index] = f"error: {type(exc).__name__}: {exc}"
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i, ref)) for i, ref in enumerate(references)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


class TestConcurrentFinalize:
    def test_same_reference_applies_exactly_once(self, file_app):
        tenant_id, (user_id,), variant_id = seed(file_app, stock=10)
        reference = open_checkout(file_app, tenant_id, user_id, variant_id, quantity=2)

        outcomes = run_concurrently(file_app, [reference] * WORKERS)

        assert outcomes.count("applied") == 1, outcomes
        assert outcomes.count("idempotent") == WORKERS - 1, outcomes

        with file_app.app_context():
            assert db.session.get(Variant, variant_id).stock == 8
            assert db.session.query(InventoryLedgerEntry).count() == 1
            assert db.session.query(NotificationJob).count() == 1
            payment = db.session.query(Payment).filter_by(provider_ref=reference).one()
            assert payment.status == "success"
            order = db.session.get(Order, payment.order_id)
            assert order.status == "paid"
            assert [event.status for event in order.timeline] == ["pending", "paid"]

    def test_last_unit_goes_to_exactly_one_order(self, file_app):
        tenant_id, user_ids, variant_id = seed(file_app, stock=1, customers=2)
        references = [open_checkout(file_app, tenant_id, user_id, variant_id) for user_id in user_ids]

        outcomes = run_concurrently(file_app, references)

        assert sorted(outcomes) == ["applied", "stock_conflict"], outcomes

        with file_app.app_context():
            assert db.session.get(Variant, variant_id).stock == 0
            statuses = sorted(
                payment.status for payment in db.session.query(Payment).filter(Payment.provider_ref.in_(references))
            )
            assert statuses == ["initialized", "success"]
            assert db.session.query(InventoryLedgerEntry).count() == 1
