# Overview: Pytest coverage for the webhook, redirect callback and status poll routes.

"""
Payment Confirmation Route Tests

SECURITY TESTS: an unsigned or mis-signed webhook is rejected with 401 and
mutates nothing. Every other authenticated, well-formed delivery answers
200, including replays and events the pipeline ignores.
"""

import json
from urllib.parse import parse_qs, urlparse

from commerce.models import InventoryLedgerEntry, NotificationJob, Order, Variant
from commerce.services import checkout_service

from conftest import auth_headers, sign, webhook_body


class TestWebhook:
    def test_valid_charge_success_finalizes(self, db_session, post_webhook, make_order, variant):
        session = make_order(quantity=1)

        response = post_webhook(webhook_body(session.payment_ref))

        assert response.status_code == 200
        assert response.json == {"acknowledged": True, "idempotent": False}
        payment = checkout_service.find_payment(session.payment_ref)
        assert payment.status == "success"
        assert payment.provider_metadata["source"] == "webhook"
        assert payment.provider_metadata["gateway_response"] == "Approved"
        assert db_session.get(Order, payment.order_id).status == "paid"
        assert db_session.get(Variant, variant.id).stock == 9

    def test_replay_returns_200_without_changes(self, db_session, post_webhook, make_order, variant):
        session = make_order(quantity=1)
        body = webhook_body(session.payment_ref)
        post_webhook(body)

        response = post_webhook(body)

        assert response.status_code == 200
        assert response.json["idempotent"] is True
        assert db_session.get(Variant, variant.id).stock == 9
        assert db_session.query(InventoryLedgerEntry).count() == 1
        assert db_session.query(NotificationJob).count() == 1

    def test_invalid_signature_rejected_without_mutation(self, db_session, post_webhook, make_order, variant):
        session = make_order(quantity=1)

        response = post_webhook(webhook_body(session.payment_ref), signature="deadbeef")

        assert response.status_code == 401
        assert response.json["error"] == "Invalid webhook signature"
        assert checkout_service.find_payment(session.payment_ref).status == "initialized"
        assert db_session.get(Variant, variant.id).stock == 10

    def test_missing_signature_rejected(self, db_session, post_webhook, make_order):
        session = make_order()
        response = post_webhook(webhook_body(session.payment_ref), sign_body=False)
        assert response.status_code == 401
        assert checkout_service.find_payment(session.payment_ref).status == "initialized"

    def test_signature_of_different_body_rejected(self, db_session, post_webhook, make_order):
        session = make_order()
        body = webhook_body(session.payment_ref)
        tampered = body.replace(b'"Approved"', b'"Approved "')
        response = post_webhook(tampered, signature=sign(body))
        assert response.status_code == 401

    def test_other_events_acknowledged(self, db_session, post_webhook, make_order):
        session = make_order()
        response = post_webhook(webhook_body(session.payment_ref, event="transfer.success"))
        assert response.status_code == 200
        assert response.json == {"acknowledged": True}
        assert checkout_service.find_payment(session.payment_ref).status == "initialized"

    def test_missing_reference_is_bad_request(self, db_session, post_webhook, tenant):
        body = json.dumps({"event": "charge.success", "data": {}}).encode("utf-8")
        response = post_webhook(body)
        assert response.status_code == 400

    def test_unknown_reference_not_found(self, db_session, post_webhook, tenant):
        response = post_webhook(webhook_body("PAY-0-NOPE00"))
        assert response.status_code == 404

    def test_invalid_json_is_bad_request(self, db_session, post_webhook, tenant):
        response = post_webhook(b"not json")
        assert response.status_code == 400

    def test_tenant_metadata_scopes_lookup(self, db_session, post_webhook, make_order, other_tenant):
        session = make_order()
        response = post_webhook(webhook_body(session.payment_ref, tenant_id=other_tenant.id))
        assert response.status_code == 404
        assert checkout_service.find_payment(session.payment_ref).status == "initialized"

    def test_stock_conflict_answers_409_and_keeps_payment(self, db_session, post_webhook, make_order, variant):
        session = make_order(quantity=2)
        db_session.get(Variant, variant.id).stock = 1
        db_session.commit()

        response = post_webhook(webhook_body(session.payment_ref))

        assert response.status_code == 409
        assert checkout_service.find_payment(session.payment_ref).status == "initialized"
        assert db_session.get(Variant, variant.id).stock == 1


class TestCallback:
    def test_success_redirects_with_refs(self, db_session, client, make_order):
        session = make_order()

        response = client.get(f'/api/payments/paystack/callback?reference={session.payment_ref}')

        assert response.status_code == 302
        location = urlparse(response.headers['Location'])
        assert location.path == '/checkout/success'
        query = parse_qs(location.query)
        assert query['ref'] == [session.payment_ref]
        assert query['orderRef'] == [session.order_ref]
        assert checkout_service.find_payment(session.payment_ref).status == "success"

    def test_unsuccessful_verification_redirects_to_failure(self, db_session, client, make_order, gateway):
        session = make_order()
        gateway.statuses[session.payment_ref] = "abandoned"

        response = client.get(f'/api/payments/paystack/callback?reference={session.payment_ref}')

        assert response.status_code == 302
        location = urlparse(response.headers['Location'])
        assert location.path == '/checkout/failure'
        assert parse_qs(location.query)['ref'] == [session.payment_ref]
        assert checkout_service.find_payment(session.payment_ref).status == "initialized"

    def test_gateway_error_redirects_to_failure(self, db_session, client, make_order, gateway):
        session = make_order()
        gateway.fail_verify = True

        response = client.get(f'/api/payments/paystack/callback?reference={session.payment_ref}')

        assert response.status_code == 302
        assert urlparse(response.headers['Location']).path == '/checkout/failure'

    def test_missing_reference_redirects_to_failure(self, client, tenant):
        response = client.get('/api/payments/paystack/callback')
        assert response.status_code == 302
        assert response.headers['Location'] == 'http://shop.test/checkout/failure'

    def test_callback_after_webhook_is_idempotent(self, db_session, client, post_webhook, make_order, variant):
        session = make_order()
        post_webhook(webhook_body(session.payment_ref))

        response = client.get(f'/api/payments/paystack/callback?reference={session.payment_ref}')

        assert urlparse(response.headers['Location']).path == '/checkout/success'
        assert db_session.get(Variant, variant.id).stock == 9
        assert db_session.query(NotificationJob).count() == 1


class TestStatusPoll:
    def test_poll_finalizes_when_gateway_reports_success(self, db_session, client, make_order, tenant):
        session = make_order()

        response = client.get(f'/api/payments/{session.payment_ref}/status', headers={'X-Tenant-Id': 'sws'})

        assert response.status_code == 200
        assert response.json['payment_ref'] == session.payment_ref
        assert response.json['status'] == 'success'
        assert response.json['verified_at'].endswith('Z')

    def test_poll_keeps_pending_state_when_gateway_pending(self, db_session, client, make_order, gateway, tenant):
        session = make_order()
        gateway.statuses[session.payment_ref] = "ongoing"

        response = client.get(f'/api/payments/{session.payment_ref}/status', headers={'X-Tenant-Id': 'sws'})

        assert response.status_code == 200
        assert response.json['status'] == 'initialized'
        assert response.json['verified_at'] is None

    def test_poll_swallows_gateway_failure(self, db_session, client, make_order, gateway, tenant):
        session = make_order()
        gateway.fail_verify = True

        response = client.get(f'/api/payments/{session.payment_ref}/status', headers={'X-Tenant-Id': 'sws'})

        assert response.status_code == 200
        assert response.json['status'] == 'initialized'

    def test_poll_skips_gateway_once_confirmed(self, db_session, client, make_order, gateway, tenant):
        session = make_order()
        checkout_service.finalize_successful_payment(session.payment_ref)
        gateway.verified.clear()

        response = client.get(f'/api/payments/{session.payment_ref}/status', headers={'X-Tenant-Id': 'sws'})

        assert response.json['status'] == 'success'
        assert gateway.verified == []

    def test_poll_unknown_reference(self, client, tenant):
        response = client.get('/api/payments/PAY-0-NOPE00/status', headers={'X-Tenant-Id': 'sws'})
        assert response.status_code == 404

    def test_poll_other_tenant_not_found(self, db_session, client, make_order, other_tenant):
        session = make_order()
        response = client.get(f'/api/payments/{session.payment_ref}/status', headers={'X-Tenant-Id': 'other'})
        assert response.status_code == 404


class TestPaymentOrder:
    def test_owner_sees_order(self, db_session, client, make_order, customer_headers):
        session = make_order()
        response = client.get(f'/api/payments/{session.payment_ref}/order', headers=customer_headers)
        assert response.status_code == 200
        assert response.json['order_ref'] == session.order_ref
        assert response.json['status'] == 'pending'

    def test_other_customer_forbidden(self, db_session, client, make_order, other_customer):
        session = make_order()
        response = client.get(f'/api/payments/{session.payment_ref}/order', headers=auth_headers(other_customer))
        assert response.status_code == 403

    def test_admin_sees_any_order(self, db_session, client, make_order, admin_headers):
        session = make_order()
        response = client.get(f'/api/payments/{session.payment_ref}/order', headers=admin_headers)
        assert response.status_code == 200
