# Overview: Tenant resolution from request headers.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import Tenant


def resolve_tenant(raw: str | None) -> Tenant:
    """
    Resolve a tenant from an X-Tenant-Id value: numeric id or slug.

    Inactive tenants are reported as not found.
    """
    if raw is None or not str(raw).strip():
        raise ValidationError("Missing X-Tenant-Id header")

    value = str(raw).strip()
    tenant = None
    if value.isdigit():
        tenant = db.session.get(Tenant, int(value))
    if tenant is None:
        tenant = db.session.query(Tenant).filter_by(slug=value).first()

    if tenant is None or not tenant.is_active:
        raise NotFound("Tenant not found")
    return tenant
