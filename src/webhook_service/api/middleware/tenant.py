"""Tenant resolution — every management call is scoped to one tenant.

The tenant is taken from the ``X-Tenant-ID`` header (management API) or
from the URL path (provider callbacks that cannot send custom headers).
Authentication of the caller is handled upstream by the platform gateway.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from webhook_service.errors.definitions import ErrInvalidTenant, ErrMissingTenant

TENANT_HEADER = "x-tenant-id"

_TENANT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,63}$")


@dataclass(frozen=True)
class TenantContext:
    """Tenant the current request acts on."""

    tenant_id: str


def resolve_tenant(value: str | None) -> TenantContext:
    """Validate a raw tenant id.

    Raises:
        WebhookError: 400 if missing or malformed.
    """
    tenant_id = (value or "").strip()
    if not tenant_id:
        raise ErrMissingTenant
    if not _TENANT_RE.match(tenant_id):
        raise ErrInvalidTenant
    return TenantContext(tenant_id=tenant_id)
