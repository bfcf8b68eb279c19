"""V1 event dispatch for internal producers.

Order, payment and catalogue services post domain events here; the
response lists the deliveries queued for the tenant's endpoints.
"""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends

from webhook_service.api.dependencies import get_engine, require_tenant
from webhook_service.api.middleware.tenant import TenantContext  # noqa: TC001
from webhook_service.api.v1.schemas import DispatchEventRequest, DispatchEventResponse
from webhook_service.engine.client import WebhookEngine  # noqa: TC001
from webhook_service.engine.services.dispatcher import ensure_serializable
from webhook_service.errors.definitions import ErrUnknownEventType
from webhook_service.notifications.events import is_known_event

router = APIRouter(prefix="/webhooks", tags=["webhook-events"])


@router.post("/events", status_code=202)
async def dispatch_event(
    body: DispatchEventRequest,
    tenant: Annotated[TenantContext, Depends(require_tenant)],
    engine: Annotated[WebhookEngine, Depends(get_engine)],
) -> dict:
    """Fan an event out to every subscribed endpoint of the tenant."""
    if not is_known_event(body.event):
        raise ErrUnknownEventType
    ensure_serializable(body.data)
    event_id = body.event_id or str(uuid.uuid4())
    deliveries = await engine.dispatcher.dispatch(tenant.tenant_id, body.event, event_id, body.data)
    return DispatchEventResponse(
        event=body.event,
        event_id=event_id,
        deliveries=[d.id for d in deliveries],
    ).model_dump(mode="json")
