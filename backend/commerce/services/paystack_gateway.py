# Overview: Paystack payment gateway adapter (initialize, verify, webhook signature).

"""
Payment Gateway Adapter

Keeps Paystack's wire format out of the checkout pipeline. Callers get
small dataclasses back and one of two errors:

- GatewayUnavailable: no secret key configured (nothing was sent)
- GatewayError: transport failure, timeout, non-2xx, or `status: false`

Timeouts are bounded (PAYSTACK_TIMEOUT_SECONDS) and surface as
GatewayError; the finalize path is idempotent, so callers may retry.

One instance is built per application in create_app and shared through
app.extensions["payment_gateway"].
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import GatewayError, GatewayUnavailable


SIGNATURE_HEADER = "X-Paystack-Signature"


@dataclass(frozen=True)
class GatewayInit:
    authorization_url: str
    reference: str
    access_code: str


@dataclass(frozen=True)
class GatewayVerification:
    reference: str
    status: str
    paid_at: str | None = None
    gateway_response: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == "success"


class PaystackGateway:
    def __init__(
        self,
        *,
        secret_key: str | None,
        webhook_secret: str | None = None,
        base_url: str = "https://api.paystack.co",
        timeout: float = 10.0,
        callback_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.callback_url = callback_url
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config) -> "PaystackGateway":
        return cls(
            secret_key=config.get("PAYSTACK_SECRET_KEY"),
            webhook_secret=config.get("PAYSTACK_WEBHOOK_SECRET"),
            base_url=config.get("PAYSTACK_BASE_URL", "https://api.paystack.co"),
            timeout=float(config.get("PAYSTACK_TIMEOUT_SECONDS", 10)),
            callback_url=config.get("PAYSTACK_CALLBACK_URL"),
        )

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        reference: str,
        metadata: dict[str, Any],
    ) -> GatewayInit:
        body = {
            "email": email,
            "amount": amount_minor,
            "reference": reference,
            "metadata": metadata,
        }
        if self.callback_url:
            body["callback_url"] = self.callback_url

        data = self._request("POST", "/transaction/initialize", json=body, action="initialize")
        try:
            return GatewayInit(
                authorization_url=data["authorization_url"],
                reference=data.get("reference", reference),
                access_code=data["access_code"],
            )
        except (KeyError, TypeError):
            raise GatewayError("Paystack initialize response is missing transaction fields")

    def verify_transaction(self, reference: str) -> GatewayVerification:
        data = self._request("GET", f"/transaction/verify/{quote(reference, safe='')}", action="verify")
        if not isinstance(data, dict) or "status" not in data:
            raise GatewayError("Paystack verify response is missing transaction status")
        return GatewayVerification(
            reference=data.get("reference", reference),
            status=str(data["status"]),
            paid_at=data.get("paid_at"),
            gateway_response=data.get("gateway_response"),
        )

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        """
        HMAC-SHA512 of the exact raw request bytes, compared in constant time.

        `raw_body` must be the unparsed body as received; a re-serialized
        JSON document hashes differently. With no webhook secret configured
        every signature is accepted (local development only).
        """
        if not self.webhook_secret:
            return True
        if not signature:
            return False

        expected = hmac.new(self.webhook_secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _request(self, method: str, path: str, *, action: str, json: dict | None = None) -> Any:
        if not self.secret_key:
            raise GatewayUnavailable("PAYSTACK_SECRET_KEY is not configured")

        try:
            response = self._client.request(
                method,
                path,
                json=json,
                headers={"Authorization": f"Bearer {self.secret_key}"},
            )
        except httpx.TimeoutException:
            raise GatewayError(f"Paystack {action} timed out")
        except httpx.HTTPError as exc:
            raise GatewayError(f"Paystack {action} request failed: {exc}")

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error or not isinstance(payload, dict) or not payload.get("status"):
            message = payload.get("message") if isinstance(payload, dict) else None
            raise GatewayError(
                f"Failed to {action} Paystack transaction",
                details={"http_status": response.status_code, "message": message},
            )

        return payload.get("data")
