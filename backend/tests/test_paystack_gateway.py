# Overview: Pytest coverage for the Paystack gateway adapter (wire format, errors, webhook signatures).

import hashlib
import hmac
import json

import httpx
import pytest

from commerce.errors import GatewayError, GatewayUnavailable
from commerce.services.paystack_gateway import PaystackGateway


def make_gateway(handler, **kwargs):
    options = {
        "secret_key": "sk_test_secret",
        "webhook_secret": "whsec_test_secret",
        "base_url": "https://api.paystack.test",
        "callback_url": "http://shop.test/api/payments/paystack/callback",
    }
    options.update(kwargs)
    return PaystackGateway(transport=httpx.MockTransport(handler), **options)


class TestInitializeTransaction:
    def test_posts_amount_reference_and_metadata(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": "https://checkout.paystack.com/abc123",
                    "access_code": "abc123",
                    "reference": "PAY-1-ABCDEF",
                },
            })

        gateway = make_gateway(handler)
        result = gateway.initialize_transaction(
            email="ada@example.com",
            amount_minor=17500,
            reference="PAY-1-ABCDEF",
            metadata={"tenant_id": 1, "user_id": 2, "order_ref": "SWS-1-ABCDEF"},
        )

        assert result.authorization_url == "https://checkout.paystack.com/abc123"
        assert result.access_code == "abc123"
        assert result.reference == "PAY-1-ABCDEF"
        assert seen["method"] == "POST"
        assert seen["path"] == "/transaction/initialize"
        assert seen["auth"] == "Bearer sk_test_secret"
        assert seen["body"]["amount"] == 17500
        assert seen["body"]["email"] == "ada@example.com"
        assert seen["body"]["metadata"]["order_ref"] == "SWS-1-ABCDEF"
        assert seen["body"]["callback_url"].endswith("/paystack/callback")

    def test_status_false_raises_gateway_error(self):
        def handler(request):
            return httpx.Response(200, json={"status": False, "message": "Invalid key"})

        with pytest.raises(GatewayError) as exc_info:
            make_gateway(handler).initialize_transaction("ada@example.com", 100, "PAY-1", {})
        assert exc_info.value.details["message"] == "Invalid key"

    def test_http_error_raises_gateway_error(self):
        def handler(request):
            return httpx.Response(401, json={"status": False, "message": "Unauthorized"})

        with pytest.raises(GatewayError) as exc_info:
            make_gateway(handler).initialize_transaction("ada@example.com", 100, "PAY-1", {})
        assert exc_info.value.details["http_status"] == 401

    def test_missing_fields_raise_gateway_error(self):
        def handler(request):
            return httpx.Response(200, json={"status": True, "data": {"reference": "PAY-1"}})

        with pytest.raises(GatewayError):
            make_gateway(handler).initialize_transaction("ada@example.com", 100, "PAY-1", {})

    def test_timeout_raises_gateway_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayError, match="timed out"):
            make_gateway(handler).initialize_transaction("ada@example.com", 100, "PAY-1", {})

    def test_missing_secret_key_is_unavailable(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"status": True, "data": {}})

        with pytest.raises(GatewayUnavailable):
            make_gateway(handler, secret_key=None).initialize_transaction("ada@example.com", 100, "PAY-1", {})
        assert calls == []


class TestVerifyTransaction:
    def test_success_status(self):
        def handler(request):
            assert request.method == "GET"
            assert request.url.path == "/transaction/verify/PAY-1-ABCDEF"
            return httpx.Response(200, json={
                "status": True,
                "data": {
                    "reference": "PAY-1-ABCDEF",
                    "status": "success",
                    "paid_at": "2026-03-01T10:00:00.000Z",
                    "gateway_response": "Approved",
                },
            })

        result = make_gateway(handler).verify_transaction("PAY-1-ABCDEF")
        assert result.is_success
        assert result.gateway_response == "Approved"
        assert result.paid_at == "2026-03-01T10:00:00.000Z"

    def test_abandoned_status_is_not_success(self):
        def handler(request):
            return httpx.Response(200, json={"status": True, "data": {"reference": "PAY-1", "status": "abandoned"}})

        result = make_gateway(handler).verify_transaction("PAY-1")
        assert result.status == "abandoned"
        assert not result.is_success

    def test_missing_status_raises(self):
        def handler(request):
            return httpx.Response(200, json={"status": True, "data": {"reference": "PAY-1"}})

        with pytest.raises(GatewayError):
            make_gateway(handler).verify_transaction("PAY-1")

    def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GatewayError):
            make_gateway(handler).verify_transaction("PAY-1")


class TestWebhookSignature:
    BODY = b'{"event":"charge.success","data":{"reference":"PAY-1"}}'

    def _sign(self, body, secret="whsec_test_secret"):
        return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()

    def _gateway(self, **kwargs):
        return make_gateway(lambda request: httpx.Response(500), **kwargs)

    def test_valid_signature_accepted(self):
        assert self._gateway().verify_webhook_signature(self.BODY, self._sign(self.BODY))

    def test_wrong_secret_rejected(self):
        assert not self._gateway().verify_webhook_signature(self.BODY, self._sign(self.BODY, "other"))

    def test_missing_signature_rejected(self):
        assert not self._gateway().verify_webhook_signature(self.BODY, None)
        assert not self._gateway().verify_webhook_signature(self.BODY, "")

    def test_signature_covers_exact_bytes(self):
        reserialized = json.dumps(json.loads(self.BODY)).encode("utf-8")
        assert reserialized != self.BODY
        assert not self._gateway().verify_webhook_signature(reserialized, self._sign(self.BODY))

    def test_no_webhook_secret_accepts_everything(self):
        assert self._gateway(webhook_secret=None).verify_webhook_signature(self.BODY, None)
