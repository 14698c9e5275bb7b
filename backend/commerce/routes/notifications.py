# Overview: Flask API routes for the customer notification inbox.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_auth, require_customer, require_tenant
from ..errors import CommerceError, error_response
from ..services import inbox_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("/me")
@require_tenant
@require_auth
@require_customer
def my_notifications_route():
    try:
        entries = inbox_service.list_customer_notifications(g.tenant.id, g.current_user.id)
        return jsonify({"notifications": [entry.to_dict() for entry in entries]}), 200
    except Exception:
        current_app.logger.exception("Failed to list customer notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.patch("/me/<int:notification_id>/read")
@require_tenant
@require_auth
@require_customer
def mark_notification_read_route(notification_id: int):
    try:
        entry = inbox_service.mark_notification_read(g.tenant.id, g.current_user.id, notification_id)
        return jsonify({"id": entry.id, "read_at": entry.to_dict()["read_at"]}), 200
    except CommerceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500
