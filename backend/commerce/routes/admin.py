# Overview: Flask API routes for back-office order fulfillment and inventory adjustments.

# backend/commerce/routes/admin.py
"""Admin API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission, require_tenant
from ..errors import CommerceError, error_response
from ..extensions import notification_queue
from ..permissions import PERM_INVENTORY_MANAGE, PERM_ORDERS_READ, PERM_ORDERS_WRITE
from ..services import inventory_service, order_service
from ..validation import PayloadPolicy, validate_payload


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

STATUS_UPDATE_POLICY = PayloadPolicy(
    allowed_fields={"status", "tracking_number", "note"},
    required_fields={"status"},
)

TRACKING_EVENT_POLICY = PayloadPolicy(
    allowed_fields={"provider", "external_tracking_id", "status", "location", "message", "event_at", "raw"},
    required_fields={"provider", "external_tracking_id", "status"},
)

INVENTORY_ADJUSTMENT_POLICY = PayloadPolicy(
    allowed_fields={"product_id", "variant_id", "operation", "quantity", "target_stock", "note"},
    required_fields={"product_id", "variant_id", "operation"},
)


# =============================================================================
# ORDERS
# =============================================================================

@admin_bp.get("/orders/<int:order_id>")
@require_tenant
@require_auth
@require_permission(PERM_ORDERS_READ)
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.tenant.id, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/orders/<int:order_id>/status")
@require_tenant
@require_auth
@require_permission(PERM_ORDERS_WRITE)
def update_order_status_route(order_id: int):
    """
    Move an order through the fulfillment lifecycle.

    Body: {status, tracking_number?, note?}
    - 400 invalid payload, or shipping without a tracking number
    - 404 unknown order
    - 409 transition not allowed
    """
    try:
        data = validate_payload(request.get_json(silent=True), STATUS_UPDATE_POLICY)
        order = order_service.update_order_status(
            g.tenant.id,
            order_id,
            data["status"],
            tracking_number=data.get("tracking_number"),
            note=data.get("note"),
            actor=g.current_user.role,
            notifications=notification_queue(),
        )
        return jsonify({
            "id": order.id,
            "status": order.status,
            "tracking_number": order.tracking_number,
            "timeline": [event.to_dict() for event in order.timeline],
        }), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/orders/<int:order_id>/tracking-events")
@require_tenant
@require_auth
@require_permission(PERM_ORDERS_WRITE)
def create_tracking_event_route(order_id: int):
    try:
        data = validate_payload(request.get_json(silent=True), TRACKING_EVENT_POLICY)
        event = order_service.record_tracking_event(
            g.tenant.id,
            order_id,
            data,
            actor=g.current_user.role,
            notifications=notification_queue(),
        )
        return jsonify({"tracking_event": event.to_dict()}), 201
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record tracking event")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/orders/<int:order_id>/tracking-events")
@require_tenant
@require_auth
@require_permission(PERM_ORDERS_READ)
def list_tracking_events_route(order_id: int):
    try:
        events = order_service.list_tracking_events(g.tenant.id, order_id)
        return jsonify({"tracking_events": [event.to_dict() for event in events]}), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list tracking events")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# INVENTORY
# =============================================================================

@admin_bp.post("/inventory/adjustments")
@require_tenant
@require_auth
@require_permission(PERM_INVENTORY_MANAGE)
def create_inventory_adjustment_route():
    """
    Body: {product_id, variant_id, operation: add|remove|adjust,
           quantity (add/remove) | target_stock (adjust), note?}
    Returns 201 with the ledger entry; 409 if stock would go negative.
    """
    try:
        data = validate_payload(request.get_json(silent=True), INVENTORY_ADJUSTMENT_POLICY)
        entry = inventory_service.adjust_inventory(
            g.tenant.id,
            product_id=data["product_id"],
            variant_id=data["variant_id"],
            operation=data["operation"],
            quantity=data.get("quantity"),
            target_stock=data.get("target_stock"),
            note=data.get("note"),
            actor_id=str(g.current_user.id),
            actor_role=g.current_user.role,
            notifications=notification_queue(),
        )
        return jsonify({"entry": entry.to_dict()}), 201
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/inventory/ledger")
@require_tenant
@require_auth
@require_permission(PERM_INVENTORY_MANAGE)
def list_inventory_ledger_route():
    try:
        entries = inventory_service.list_ledger(
            g.tenant.id,
            product_id=request.args.get("product_id"),
            variant_id=request.args.get("variant_id"),
            limit=request.args.get("limit"),
        )
        return jsonify({"rows": [entry.to_dict() for entry in entries], "total": len(entries)}), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list inventory ledger")
        return jsonify({"error": "Internal server error"}), 500
