# Overview: Flask API routes for payment confirmation (webhook, redirect callback, status poll).

"""
Payment confirmation routes.

All three triggers converge on checkout_service.finalize_successful_payment.

- webhook: authenticated by HMAC signature over the raw body; always 200
  for authenticated, well-formed deliveries, including replays
- callback: browser redirect target; always answers with a redirect
- status: read that may finalize when the gateway now reports success

Webhook and callback are called by the gateway/browser without
X-Tenant-Id; the payment reference identifies the tenant.
"""

from urllib.parse import urlencode

from flask import Blueprint, request, jsonify, g, current_app, redirect

from ..decorators import require_auth, require_tenant
from ..errors import CommerceError, error_response
from ..extensions import notification_queue, payment_gateway
from ..services import checkout_service
from ..services.paystack_gateway import SIGNATURE_HEADER
from commerce.time_utils import to_utc_z


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/paystack/webhook")
def paystack_webhook_route():
    raw_body = request.get_data(cache=True)
    signature = request.headers.get(SIGNATURE_HEADER)

    if not payment_gateway().verify_webhook_signature(raw_body, signature):
        current_app.logger.warning("Rejected Paystack webhook with invalid signature from %s", request.remote_addr)
        return jsonify({"error": "Invalid webhook signature"}), 401

    event = request.get_json(silent=True)
    if not isinstance(event, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        result = checkout_service.finalize_from_webhook(event, notifications=notification_queue())
    except CommerceError as e:
        current_app.logger.warning("Webhook %s not applied: %s", event.get("event"), e.message)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Webhook processing failed")
        return jsonify({"error": "Webhook processing failed"}), 500

    if result is None:
        return jsonify({"acknowledged": True}), 200
    return jsonify({"acknowledged": True, "idempotent": result.idempotent}), 200


@payments_bp.get("/paystack/callback")
def paystack_callback_route():
    reference = (request.args.get("reference") or "").strip()
    success_url = current_app.config["CHECKOUT_SUCCESS_URL"]
    failure_url = current_app.config["CHECKOUT_FAILURE_URL"]

    if not reference:
        return redirect(failure_url)

    failure_target = f"{failure_url}?{urlencode({'ref': reference})}"
    try:
        result = checkout_service.finalize_from_callback(
            reference,
            gateway=payment_gateway(),
            notifications=notification_queue(),
        )
    except Exception:
        current_app.logger.exception("Paystack callback failed for %s", reference)
        return redirect(failure_target)

    if result is None:
        return redirect(failure_target)
    return redirect(f"{success_url}?{urlencode({'ref': reference, 'orderRef': result.order.order_ref})}")


@payments_bp.get("/<string:reference>/status")
@require_tenant
def payment_status_route(reference: str):
    try:
        payment = checkout_service.refresh_payment_status(
            g.tenant.id,
            reference,
            gateway=payment_gateway(),
            notifications=notification_queue(),
        )
        return jsonify({
            "payment_ref": payment.provider_ref,
            "status": payment.status,
            "verified_at": to_utc_z(payment.verified_at),
        }), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load payment status")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("/<string:reference>/order")
@require_tenant
@require_auth
def payment_order_route(reference: str):
    try:
        payment, order = checkout_service.get_payment_order(g.tenant.id, reference, user=g.current_user)
        return jsonify({
            "payment_ref": payment.provider_ref,
            "order_id": order.id,
            "order_ref": order.order_ref,
            "status": order.status,
        }), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load payment order")
        return jsonify({"error": "Internal server error"}), 500
