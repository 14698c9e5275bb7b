# Overview: Health and version endpoints.

"""
System health endpoints.

/api/health reports database connectivity, the notification queue backlog
and whether the payment gateway and mail transport are configured.
"""

import sys
import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import NotificationJob, Tenant
from ..models.notifications import JOB_STATUS_FAILED, JOB_STATUS_QUEUED
from ..services.notification_service import build_transport
from commerce.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        tenant_count = db.session.query(Tenant).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tenants": tenant_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_notification_queue_health() -> dict:
    """Degraded when jobs have exhausted their retries, or mail is log-only."""
    try:
        now = utcnow()
        queued = db.session.query(NotificationJob).filter_by(status=JOB_STATUS_QUEUED).count()
        overdue = db.session.query(NotificationJob).filter(
            NotificationJob.status == JOB_STATUS_QUEUED,
            NotificationJob.next_attempt_at < now,
        ).count()
        failed = db.session.query(NotificationJob).filter_by(status=JOB_STATUS_FAILED).count()
    except Exception:
        current_app.logger.exception("Notification queue health check failed")
        return {"status": "unhealthy", "error": "Notification queue error"}

    smtp_configured = build_transport(current_app.config) is not None
    result = {
        "status": "healthy",
        "details": {
            "queued": queued,
            "overdue": overdue,
            "failed": failed,
            "smtp_configured": smtp_configured,
        },
    }
    if failed or not smtp_configured:
        result["status"] = "degraded"
    return result


def check_gateway_config() -> dict:
    configured = bool(current_app.config.get("PAYSTACK_SECRET_KEY"))
    webhook_signed = bool(current_app.config.get("PAYSTACK_WEBHOOK_SECRET"))
    return {
        "status": "healthy" if configured else "degraded",
        "details": {
            "secret_key_configured": configured,
            "webhook_signature_enforced": webhook_signed,
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: the database is unreachable
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "notifications": check_notification_queue_health(),
        "payment_gateway": check_gateway_config(),
    }

    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
