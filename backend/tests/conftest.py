"""
Pytest fixtures for the commerce backend tests.

Provides an in-memory application per test, tenant/customer/admin
fixtures, a catalog variant to buy, and a fake payment gateway so no test
talks to Paystack.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass, field

import pytest

from commerce import create_app
from commerce.extensions import db
from commerce.errors import GatewayError
from commerce.models import Product, Tenant, User, Variant
from commerce.models.auth import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_STAFF
from commerce.permissions import ACCESS_OWNER, ACCESS_STAFF
from commerce.services import cart_service, checkout_service, session_service
from commerce.services.paystack_gateway import GatewayInit, GatewayVerification


WEBHOOK_SECRET = "whsec_test_secret"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'PAYSTACK_SECRET_KEY': 'sk_test_secret',
    'PAYSTACK_WEBHOOK_SECRET': WEBHOOK_SECRET,
    'SHIPPING_FEE_MINOR': 2500,
    'CURRENCY': 'NGN',
    'CHECKOUT_SUCCESS_URL': 'http://shop.test/checkout/success',
    'CHECKOUT_FAILURE_URL': 'http://shop.test/checkout/failure',
    'LOG_DIR': None,
    'LOG_LEVEL': 'WARNING',
}


@dataclass
class FakeGateway:
    """
    Stand-in for PaystackGateway.

    `statuses` maps a payment reference to the status verify reports
    (default "success"). Set `fail_initialize` / `fail_verify` to make the
    corresponding call raise GatewayError.
    """
    webhook_secret: str = WEBHOOK_SECRET
    statuses: dict = field(default_factory=dict)
    fail_initialize: bool = False
    fail_verify: bool = False
    initialized: list = field(default_factory=list)
    verified: list = field(default_factory=list)

    def initialize_transaction(self, email, amount_minor, reference, metadata):
        if self.fail_initialize:
            raise GatewayError("Failed to initialize Paystack transaction")
        self.initialized.append({
            "email": email,
            "amount_minor": amount_minor,
            "reference": reference,
            "metadata": metadata,
        })
        return GatewayInit(
            authorization_url=f"https://checkout.paystack.test/{reference}",
            reference=reference,
            access_code=f"AC_{reference}",
        )

    def verify_transaction(self, reference):
        self.verified.append(reference)
        if self.fail_verify:
            raise GatewayError("Paystack verify timed out")
        return GatewayVerification(
            reference=reference,
            status=self.statuses.get(reference, "success"),
            paid_at="2026-03-01T10:00:00.000Z",
            gateway_response="Approved",
        )

    def verify_webhook_signature(self, raw_body, signature):
        if not signature:
            return False
        expected = hmac.new(self.webhook_secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)


@pytest.fixture(scope='function')
def app():
    """Fresh application and schema per test."""
    app = create_app(dict(TEST_CONFIG))
    app.extensions["payment_gateway"].close()
    app.extensions["payment_gateway"] = FakeGateway()

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def gateway(app):
    return app.extensions["payment_gateway"]


@pytest.fixture(scope='function')
def notifications(app):
    return app.extensions["notification_queue"]


@pytest.fixture(scope='function')
def tenant(db_session):
    tenant = Tenant(name="Shop with Seye", slug="sws", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    tenant = Tenant(name="Other Store", slug="other", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def customer(db_session, tenant):
    user = User(
        tenant_id=tenant.id,
        email="ada@example.com",
        first_name="Ada",
        last_name="Obi",
        role=ROLE_CUSTOMER,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_customer(db_session, tenant):
    user = User(
        tenant_id=tenant.id,
        email="bola@example.com",
        first_name="Bola",
        last_name="Ade",
        role=ROLE_CUSTOMER,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session, tenant):
    """Back-office owner: every permission."""
    user = User(
        tenant_id=tenant.id,
        email="owner@sws.local",
        first_name="Store",
        last_name="Owner",
        role=ROLE_ADMIN,
        access_level=ACCESS_OWNER,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def staff(db_session, tenant):
    """Back-office staff: orders only, no inventory."""
    user = User(
        tenant_id=tenant.id,
        email="staff@sws.local",
        first_name="Shop",
        last_name="Staff",
        role=ROLE_STAFF,
        access_level=ACCESS_STAFF,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def product(db_session, tenant):
    product = Product(tenant_id=tenant.id, slug="classic-tee", name="Classic Tee")
    product.variants.append(
        Variant(tenant_id=tenant.id, sku="TEE-M-BLK", size="M", color="Black", stock=10, price_minor=15000)
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def variant(product):
    return product.variants[0]


def auth_headers(user, tenant=None) -> dict:
    """Issue a bearer session for `user` and return request headers."""
    _, token = session_service.create_session(user.id)
    headers = {'Authorization': f'Bearer {token}'}
    headers['X-Tenant-Id'] = str((tenant.id if tenant is not None else user.tenant_id))
    return headers


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def webhook_body(reference: str, *, event: str = "charge.success", tenant_id=None) -> bytes:
    data = {
        "reference": reference,
        "status": "success",
        "gateway_response": "Approved",
        "paid_at": "2026-03-01T10:00:00.000Z",
    }
    if tenant_id is not None:
        data["metadata"] = {"tenant_id": tenant_id}
    return json.dumps({"event": event, "data": data}).encode("utf-8")


def place_order(tenant, customer, variant, gateway, *, quantity=1, shipping_fee=2500):
    """Fill the customer's cart and initialize checkout. Returns the CheckoutSession."""
    cart_service.set_cart_line(
        tenant.id,
        product_id=variant.product_id,
        variant_id=variant.id,
        quantity=quantity,
        user_id=customer.id,
    )
    return checkout_service.initialize_checkout(
        tenant.id,
        customer.id,
        {
            "email": customer.email,
            "shipping_address": "12 Admiralty Way, Lekki",
            "city": "Lagos",
            "state": "Lagos",
        },
        gateway=gateway,
        shipping_fee=shipping_fee,
    )


@pytest.fixture(scope='function')
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture(scope='function')
def staff_headers(staff):
    return auth_headers(staff)


@pytest.fixture(scope='function')
def make_order(tenant, customer, variant, gateway):
    """Factory: `make_order(quantity=2)` -> CheckoutSession for the default customer."""
    def _make(quantity=1, user=None, target_variant=None):
        return place_order(tenant, user or customer, target_variant or variant, gateway, quantity=quantity)
    return _make


@pytest.fixture(scope='function')
def post_webhook(client):
    """`post_webhook(body, signature=...)`; signs with the test secret unless a signature is given."""
    def _post(body: bytes, signature: str | None = None, sign_body: bool = True):
        headers = {'Content-Type': 'application/json'}
        if signature is not None:
            headers['X-Paystack-Signature'] = signature
        elif sign_body:
            headers['X-Paystack-Signature'] = sign(body)
        return client.post('/api/payments/paystack/webhook', data=body, headers=headers)
    return _post
