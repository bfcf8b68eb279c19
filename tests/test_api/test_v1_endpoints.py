"""Tests for the V1 endpoint management routes.

Services are mocked; these tests cover routing, validation and
serialisation.
"""

from __future__ import annotations

from webhook_service.engine.services.endpoint_service import EndpointHealth, TestResult
from webhook_service.errors.definitions import (
    ErrEndpointNotFound,
    ErrInvalidEndpointURL,
    ErrUnknownEventType,
)

BASE = "/api/v1/webhooks/endpoints"


class TestCreate:
    def test_returns_secret_once(self, client, mock_engine, endpoint_record) -> None:
        record = endpoint_record()
        mock_engine.endpoint_service.create.return_value = record

        resp = client.post(
            BASE,
            json={
                "url": "https://shop.example.com/hooks",
                "events": ["order.created"],
                "name": "orders",
                "headers": {"X-Shop": "bd-01"},
            },
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["id"] == "ep-1"
        assert body["secret"] == record.secret
        assert body["created_at"] == "2026-03-01T12:00:00Z"
        args, kwargs = mock_engine.endpoint_service.create.call_args
        assert args == ("tenant-a", "https://shop.example.com/hooks", ["order.created"], None)
        assert kwargs["name"] == "orders"
        assert kwargs["retry_policy"] == "exponential"
        assert kwargs["max_retries"] == 3
        assert kwargs["headers"] == {"X-Shop": "bd-01"}

    def test_requires_events(self, client, mock_engine) -> None:
        resp = client.post(BASE, json={"url": "https://shop.example.com/hooks", "events": []})
        assert resp.status_code == 422
        mock_engine.endpoint_service.create.assert_not_called()

    def test_short_secret_rejected(self, client) -> None:
        resp = client.post(
            BASE,
            json={"url": "https://x.example.com", "events": ["order.created"], "secret": "short"},
        )
        assert resp.status_code == 422

    def test_service_validation_errors(self, client, mock_engine) -> None:
        mock_engine.endpoint_service.create.side_effect = ErrInvalidEndpointURL
        resp = client.post(BASE, json={"url": "ftp://x", "events": ["order.created"]})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid-endpoint-url"

        mock_engine.endpoint_service.create.side_effect = ErrUnknownEventType
        resp = client.post(BASE, json={"url": "https://x.example.com", "events": ["nope"]})
        assert resp.status_code == 400
        assert resp.json()["code"] == "unknown-event-type"


class TestRead:
    def test_list_hides_secret(self, client, mock_engine, endpoint_record) -> None:
        mock_engine.endpoint_service.list.return_value = [
            endpoint_record("ep-1"),
            endpoint_record("ep-2", is_active=False),
        ]
        resp = client.get(BASE)
        assert resp.status_code == 200
        items = resp.json()
        assert [i["id"] for i in items] == ["ep-1", "ep-2"]
        assert items[1]["is_active"] is False
        assert all("secret" not in i for i in items)

    def test_get(self, client, mock_engine, endpoint_record) -> None:
        mock_engine.endpoint_service.get.return_value = endpoint_record()
        resp = client.get(f"{BASE}/ep-1")
        assert resp.status_code == 200
        assert "secret" not in resp.json()
        mock_engine.endpoint_service.get.assert_awaited_once_with("tenant-a", "ep-1")

    def test_get_missing(self, client, mock_engine) -> None:
        mock_engine.endpoint_service.get.side_effect = ErrEndpointNotFound
        assert client.get(f"{BASE}/nope").status_code == 404


class TestUpdate:
    def test_only_supplied_fields(self, client, mock_engine, endpoint_record) -> None:
        mock_engine.endpoint_service.update.return_value = endpoint_record(is_active=False)
        resp = client.patch(f"{BASE}/ep-1", json={"is_active": False, "unknown": 1})
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        mock_engine.endpoint_service.update.assert_awaited_once_with(
            "tenant-a", "ep-1", is_active=False
        )

    def test_put_alias(self, client, mock_engine, endpoint_record) -> None:
        mock_engine.endpoint_service.update.return_value = endpoint_record()
        resp = client.put(f"{BASE}/ep-1", json={"events": ["order.created", "order.updated"]})
        assert resp.status_code == 200
        mock_engine.endpoint_service.update.assert_awaited_once_with(
            "tenant-a", "ep-1", events=["order.created", "order.updated"]
        )


class TestDelete:
    def test_no_content(self, client, mock_engine) -> None:
        resp = client.delete(f"{BASE}/ep-1")
        assert resp.status_code == 204
        assert resp.content == b""
        mock_engine.endpoint_service.delete.assert_awaited_once_with("tenant-a", "ep-1")

    def test_missing(self, client, mock_engine) -> None:
        mock_engine.endpoint_service.delete.side_effect = ErrEndpointNotFound
        assert client.delete(f"{BASE}/ep-1").status_code == 404


class TestTestAndHealth:
    def test_send_test(self, client, mock_engine) -> None:
        mock_engine.endpoint_service.test.return_value = TestResult(
            success=False, status_code=500, response_time_ms=42, error="HTTP 500: boom"
        )
        resp = client.post(f"{BASE}/ep-1/test")
        assert resp.status_code == 200
        assert resp.json() == {
            "success": False,
            "status_code": 500,
            "response_time_ms": 42,
            "error": "HTTP 500: boom",
        }

    def test_health(self, client, mock_engine) -> None:
        mock_engine.endpoint_service.health.return_value = EndpointHealth(
            endpoint_id="ep-1",
            is_active=True,
            is_disabled=False,
            failure_count=2,
            last_status="failed",
            last_delivery_at=None,
            period_days=14,
            total_deliveries=10,
            delivered=8,
            failed=2,
            pending=0,
            success_rate=80.0,
        )
        resp = client.get(f"{BASE}/ep-1/health", params={"days": 14})
        assert resp.status_code == 200
        assert resp.json()["success_rate"] == 80.0
        mock_engine.endpoint_service.health.assert_awaited_once_with(
            "tenant-a", "ep-1", days=14
        )

    def test_health_days_bounds(self, client) -> None:
        assert client.get(f"{BASE}/ep-1/health", params={"days": 0}).status_code == 422
        assert client.get(f"{BASE}/ep-1/health", params={"days": 91}).status_code == 422
