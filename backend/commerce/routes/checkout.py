# Overview: Flask API route for checkout initiation.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_customer, require_tenant
from ..errors import CommerceError, error_response
from ..extensions import payment_gateway
from ..services import checkout_service


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("/initialize")
@require_tenant
@require_auth
@require_customer
def initialize_checkout_route():
    """
    Open a gateway transaction for the customer's cart and create the
    pending order and initialized payment.

    Body: {email, address_id} or {email, shipping_address, city, state}
    Returns 201 {order_ref, payment_ref, authorization_url}
    """
    try:
        session = checkout_service.initialize_checkout(
            g.tenant.id,
            g.current_user.id,
            request.get_json(silent=True),
            gateway=payment_gateway(),
            shipping_fee=current_app.config["SHIPPING_FEE_MINOR"],
            currency=current_app.config["CURRENCY"],
        )
        return jsonify(session.to_dict()), 201
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to initialize checkout")
        return jsonify({"error": "Internal server error"}), 500
