"""Pre-defined error instances raised by services and rendered by the API."""

from __future__ import annotations

from webhook_service.errors.webhook_errors import WebhookError

# -- Tenant context ----------------------------------------------------------

ErrMissingTenant = WebhookError("missing tenant id", status_code=400, code="missing-tenant")
ErrInvalidTenant = WebhookError("invalid tenant id", status_code=400, code="invalid-tenant")

# -- Endpoint configuration --------------------------------------------------

ErrEndpointNotFound = WebhookError(
    "webhook endpoint not found", status_code=404, code="endpoint-not-found"
)
ErrInvalidEndpointURL = WebhookError(
    "endpoint url must be an absolute http(s) url",
    status_code=400,
    code="invalid-endpoint-url",
)
ErrUnknownEventType = WebhookError(
    "unknown webhook event type", status_code=400, code="unknown-event-type"
)
ErrNoEventsSubscribed = WebhookError(
    "endpoint must subscribe to at least one event",
    status_code=400,
    code="no-events-subscribed",
)
ErrInvalidRetryPolicy = WebhookError(
    "retry policy must be one of: exponential, linear, none",
    status_code=400,
    code="invalid-retry-policy",
)

# -- Deliveries --------------------------------------------------------------

ErrDeliveryNotFound = WebhookError(
    "webhook delivery not found", status_code=404, code="delivery-not-found"
)
ErrDeliveryAlreadyDelivered = WebhookError(
    "webhook delivery already delivered",
    status_code=409,
    code="delivery-already-delivered",
)
ErrDeliveryInProgress = WebhookError(
    "webhook delivery attempt in progress",
    status_code=409,
    code="delivery-in-progress",
)

# -- Dispatch ----------------------------------------------------------------

ErrPayloadNotSerializable = WebhookError(
    "event payload is not JSON serializable",
    status_code=400,
    code="payload-not-serializable",
)

# -- Incoming ----------------------------------------------------------------

ErrUnknownProvider = WebhookError(
    "unknown webhook provider", status_code=404, code="unknown-provider"
)
ErrInvalidSignature = WebhookError(
    "invalid webhook signature", status_code=401, code="invalid-signature"
)
ErrMalformedPayload = WebhookError(
    "malformed webhook payload", status_code=400, code="malformed-payload"
)

# -- Service -----------------------------------------------------------------

ErrEngineUnavailable = WebhookError(
    "webhook engine not available", status_code=503, code="engine-unavailable"
)
