# Overview: Flask API routes for the shopping cart; parses input and returns JSON responses.

"""
Cart API routes.

A cart belongs to the authenticated customer (Bearer token) or, for
anonymous shoppers, to the browser session named by X-Session-Id.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import bearer_token, load_session_context, require_tenant
from ..errors import CommerceError, Unauthorized, ValidationError, error_response
from ..models.auth import ROLE_CUSTOMER
from ..services import cart_service
from ..validation import PayloadPolicy, validate_payload


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")

CART_LINE_POLICY = PayloadPolicy(
    allowed_fields={"product_id", "variant_id", "quantity"},
    required_fields={"product_id", "variant_id", "quantity"},
)


def _cart_identity() -> dict:
    if bearer_token():
        if not load_session_context():
            raise Unauthorized("Invalid or expired token")
        if g.current_user.role != ROLE_CUSTOMER:
            raise ValidationError("Carts are only available to customer accounts")
        return {"user_id": g.current_user.id}

    session_id = (request.headers.get("X-Session-Id") or "").strip()
    if not session_id:
        raise ValidationError("Authorization or X-Session-Id header required")
    if len(session_id) > 128:
        raise ValidationError("X-Session-Id exceeds max length 128")
    return {"session_id": session_id}


def _cart_response(cart, status: int = 200):
    payload = cart_service.cart_to_dict(
        cart,
        shipping_fee=current_app.config["SHIPPING_FEE_MINOR"],
        currency=current_app.config["CURRENCY"],
    )
    return jsonify({"cart": payload}), status


@cart_bp.get("")
@require_tenant
def get_cart_route():
    try:
        cart = cart_service.get_cart(g.tenant.id, **_cart_identity())
        return _cart_response(cart)
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/items")
@require_tenant
def set_cart_item_route():
    """Add a variant, or replace its quantity when already in the cart."""
    try:
        identity = _cart_identity()
        data = validate_payload(request.get_json(silent=True), CART_LINE_POLICY)
        cart = cart_service.set_cart_line(
            g.tenant.id,
            product_id=data["product_id"],
            variant_id=data["variant_id"],
            quantity=data["quantity"],
            **identity,
        )
        return _cart_response(cart)
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/items/<int:line_id>")
@require_tenant
def remove_cart_item_route(line_id: int):
    try:
        cart = cart_service.remove_cart_line(g.tenant.id, line_id, **_cart_identity())
        return _cart_response(cart)
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return jsonify({"error": "Internal server error"}), 500
