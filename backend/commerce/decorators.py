# Overview: Request, tenant and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import CommerceError, error_response
from .models.auth import ROLE_CUSTOMER
from .services import permission_service, session_service, tenant_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'tenant_id')


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_tenant(f):
    """
    Resolve the X-Tenant-Id header (numeric id or slug) into g.tenant.

    400 if the header is missing, 404 if the tenant is unknown or inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.tenant = tenant_service.resolve_tenant(request.headers.get("X-Tenant-Id"))
        except CommerceError as e:
            return error_response(e)
        return f(*args, **kwargs)

    return decorated_function


def load_session_context() -> bool:
    """
    Populate g.current_user / g.tenant_id from a valid bearer token.

    Returns False when there is no usable token. A token issued for a
    different tenant than the resolved X-Tenant-Id is treated as invalid.
    """
    token = bearer_token()
    if not token:
        return False

    context = session_service.validate_session(token)
    if not context:
        return False

    tenant = getattr(g, "tenant", None)
    if tenant is not None and tenant.id != context.tenant_id:
        return False

    g.current_user = context.user
    g.tenant_id = context.tenant_id
    g.session_context = context
    return True


def require_auth(f):
    """
    Require a valid bearer session.

    MULTI-TENANT: the session's tenant must match the X-Tenant-Id tenant
    when require_tenant ran first. Sets:
    - g.current_user: the authenticated User
    - g.tenant_id: the session's tenant id
    - g.session_context: the full SessionContext
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not bearer_token():
            return jsonify({"error": "Authentication required"}), 401

        if not load_session_context():
            return jsonify({"error": "Invalid or expired token"}), 401

        return f(*args, **kwargs)

    return decorated_function


def require_customer(f):
    """Must follow @require_auth. Only customer accounts pass."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if g.current_user.role != ROLE_CUSTOMER:
            return jsonify({"error": "Customer account required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Must follow @require_auth. Back-office permission check (403 on denial)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.require_permission(g.current_user, permission_code)
            except CommerceError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": e.message,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
