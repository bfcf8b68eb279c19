"""V1 API request/response Pydantic schemas.

Routes copy fields off ORM rows into these models by name, so a column
that is not declared here (the endpoint secret, for instance) never
leaves the service.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error body ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


class PaginatedResponse(BaseModel):
    """Generic paginated list wrapper."""

    items: list[Any]
    total: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


class EndpointCreateRequest(BaseModel):
    """POST /api/v1/webhooks/endpoints."""

    url: str = Field(..., max_length=500)
    events: list[str] = Field(..., min_length=1)
    name: str = Field("", max_length=100)
    description: str = ""
    secret: str | None = Field(None, min_length=16, max_length=255)
    is_active: bool = True
    retry_policy: str = "exponential"
    max_retries: int = Field(3, ge=1, le=20)
    timeout_seconds: float | None = Field(None, gt=0, le=120)
    headers: dict[str, str] = Field(default_factory=dict)


class EndpointUpdateRequest(BaseModel):
    """PUT/PATCH /api/v1/webhooks/endpoints/{id}; only supplied fields change."""

    model_config = ConfigDict(extra="ignore")

    url: str | None = Field(None, max_length=500)
    events: list[str] | None = Field(None, min_length=1)
    name: str | None = Field(None, max_length=100)
    description: str | None = None
    secret: str | None = Field(None, min_length=16, max_length=255)
    is_active: bool | None = None
    retry_policy: str | None = None
    max_retries: int | None = Field(None, ge=1, le=20)
    timeout_seconds: float | None = Field(None, gt=0, le=120)
    headers: dict[str, str] | None = None


class EndpointResponse(BaseModel):
    """Serialised endpoint.  The signing secret is only returned on create."""

    id: str
    tenant_id: str
    name: str
    url: str
    description: str
    events: list[str]
    is_active: bool
    retry_policy: str
    max_retries: int
    timeout_seconds: float
    headers: dict[str, str] = Field(default_factory=dict)
    last_delivery_at: datetime | None = None
    last_status: str
    failure_count: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EndpointCreateResponse(EndpointResponse):
    secret: str


class TestResultResponse(BaseModel):
    """POST /api/v1/webhooks/endpoints/{id}/test."""

    __test__ = False

    success: bool
    status_code: int | None = None
    response_time_ms: int
    error: str = ""


class EndpointHealthResponse(BaseModel):
    endpoint_id: str
    is_active: bool
    is_disabled: bool
    failure_count: int
    last_status: str
    last_delivery_at: datetime | None = None
    period_days: int
    total_deliveries: int
    delivered: int
    failed: int
    pending: int
    success_rate: float


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------


class DeliveryResponse(BaseModel):
    """Serialised delivery record."""

    id: str
    tenant_id: str
    endpoint_id: str
    event: str
    event_id: str
    status: str
    attempt_count: int
    max_attempts: int
    request_url: str
    request_headers: dict[str, str] = Field(default_factory=dict)
    request_body: str = ""
    response_status: int | None = None
    response_headers: dict[str, str] = Field(default_factory=dict)
    response_body: str = ""
    response_time: int | None = None
    error_message: str = ""
    last_attempt_at: datetime | None = None
    next_retry_at: datetime | None = None
    delivered_at: datetime | None = None
    failed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DeliveryStatsResponse(BaseModel):
    """GET /api/v1/webhooks/stats."""

    start_date: datetime
    end_date: datetime
    total: int
    delivered: int
    failed: int
    pending: int
    delivering: int
    success_rate: float
    avg_response_time_ms: float


# ---------------------------------------------------------------------------
# Events & incoming
# ---------------------------------------------------------------------------


class DispatchEventRequest(BaseModel):
    """POST /api/v1/webhooks/events, called by internal producers."""

    event: str
    event_id: str | None = Field(None, max_length=64)
    data: dict[str, Any] = Field(default_factory=dict)


class DispatchEventResponse(BaseModel):
    event: str
    event_id: str
    deliveries: list[str]


class IncomingReceivedResponse(BaseModel):
    """Acknowledgement sent back to the provider."""

    received: bool = True
    id: str
    duplicate: bool = False
