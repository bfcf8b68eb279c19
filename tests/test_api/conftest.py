"""Fixtures for route tests: a mocked engine attached to ``app.state``."""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from webhook_service.api.app import create_app

TENANT = "tenant-a"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _endpoint_record(endpoint_id: str = "ep-1", **overrides):
    values = {
        "id": endpoint_id,
        "tenant_id": TENANT,
        "name": "orders",
        "url": "https://shop.example.com/hooks",
        "description": "",
        "events": ["order.created"],
        "secret": "whsec_" + "ab" * 32,
        "is_active": True,
        "retry_policy": "exponential",
        "max_retries": 3,
        "timeout_seconds": 30.0,
        "headers": {},
        "last_delivery_at": None,
        "last_status": "",
        "failure_count": 0,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _delivery_record(delivery_id: str = "d-1", **overrides):
    values = {
        "id": delivery_id,
        "tenant_id": TENANT,
        "endpoint_id": "ep-1",
        "event": "order.created",
        "event_id": "evt-1",
        "status": "failed",
        "attempt_count": 1,
        "max_attempts": 3,
        "request_url": "https://shop.example.com/hooks",
        "request_headers": {"X-Webhook-ID": delivery_id},
        "request_body": '{"id":"evt-1"}',
        "response_status": 500,
        "response_headers": {},
        "response_body": "upstream error",
        "response_time": 120,
        "error_message": "HTTP 500: upstream error",
        "last_attempt_at": NOW,
        "next_retry_at": NOW,
        "delivered_at": None,
        "failed_at": NOW,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _mock_engine() -> MagicMock:
    engine = MagicMock()
    engine.endpoint_service = AsyncMock()
    engine.delivery_service = AsyncMock()
    engine.dispatcher = AsyncMock()
    engine.incoming_processor = AsyncMock()
    engine.health_check = AsyncMock(
        return_value={
            "engine": "ok",
            "datastore": "ok",
            "cache": "ok",
            "workers": "ok",
            "tasks": "disabled",
        }
    )
    return engine


@pytest.fixture
def mock_engine() -> MagicMock:
    return _mock_engine()


@pytest.fixture
def app(app_config, mock_engine):
    application = create_app(config=app_config)
    application.state.engine = mock_engine
    return application


@pytest.fixture
def client(app) -> TestClient:
    """Client with tenant-a in ``X-Tenant-ID`` on every request."""
    return TestClient(app, raise_server_exceptions=False, headers={"X-Tenant-ID": TENANT})


@pytest.fixture
def endpoint_record():
    """Factory for endpoint rows as the service layer returns them."""
    return _endpoint_record


@pytest.fixture
def delivery_record():
    """Factory for delivery rows as the service layer returns them."""
    return _delivery_record
