# Overview: Flask API routes for customer order history and public order tracking.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_customer, require_tenant
from ..errors import CommerceError, error_response
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("/me")
@require_tenant
@require_auth
@require_customer
def my_orders_route():
    try:
        orders = order_service.list_customer_orders(g.tenant.id, g.current_user.id)
        return jsonify({"orders": [order.summary_dict() for order in orders]}), 200
    except Exception:
        current_app.logger.exception("Failed to list customer orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/me/<int:order_id>")
@require_tenant
@require_auth
@require_customer
def my_order_detail_route(order_id: int):
    try:
        order = order_service.get_customer_order(g.tenant.id, g.current_user.id, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load customer order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/track")
@require_tenant
def track_order_route():
    """Public lookup: ?order_ref=...&email=... (reference match is case-insensitive)."""
    try:
        order = order_service.track_order(
            g.tenant.id,
            request.args.get("order_ref"),
            request.args.get("email"),
        )
        return jsonify({"order": order_service.tracking_view(order)}), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to track order")
        return jsonify({"error": "Internal server error"}), 500
