"""Tests for the ORM models and their helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from webhook_service.engine.models import (
    ALL_MODELS,
    WebhookDelivery,
    WebhookEndpoint,
    WebhookRateLimit,
)
from webhook_service.engine.models.base import UTCDateTime, new_id, utcnow

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestHelpers:
    def test_new_id_unique(self) -> None:
        assert new_id() != new_id()
        assert len(new_id()) == 36

    def test_utcnow_is_aware(self) -> None:
        assert utcnow().tzinfo is not None

    def test_all_models(self) -> None:
        assert {m.__tablename__ for m in ALL_MODELS} == {
            "webhook_endpoints",
            "webhook_deliveries",
            "webhook_incoming",
            "webhook_rate_limits",
        }


class TestUTCDateTime:
    def test_sqlite_stores_naive_utc(self) -> None:
        col = UTCDateTime()
        local = datetime(2026, 3, 1, 16, 0, tzinfo=timezone(timedelta(hours=2)))
        stored = col.process_bind_param(local, sqlite.dialect())
        assert stored == datetime(2026, 3, 1, 14, 0)

    def test_sqlite_load_tags_utc(self) -> None:
        loaded = UTCDateTime().process_result_value(datetime(2026, 3, 1, 14, 0), sqlite.dialect())
        assert loaded == datetime(2026, 3, 1, 14, 0, tzinfo=UTC)

    def test_postgres_keeps_aware(self) -> None:
        stored = UTCDateTime().process_bind_param(NOW, postgresql.dialect())
        assert stored is not None and stored.tzinfo is not None

    def test_none(self) -> None:
        assert UTCDateTime().process_bind_param(None, sqlite.dialect()) is None


class TestWebhookEndpoint:
    def _endpoint(self, **kwargs) -> WebhookEndpoint:
        values = {
            "tenant_id": "t1",
            "url": "https://example.com/hook",
            "secret": "s",
            "events": ["order.created", "payment.failed"],
            "is_active": True,
            "failure_count": 0,
        }
        values.update(kwargs)
        return WebhookEndpoint(**values)

    def test_supports_event(self) -> None:
        ep = self._endpoint()
        assert ep.supports_event("order.created")
        assert not ep.supports_event("order.updated")

    def test_circuit_breaker(self) -> None:
        assert not self._endpoint(failure_count=9).is_disabled(10)
        assert self._endpoint(failure_count=10).is_disabled(10)

    @pytest.mark.parametrize(
        ("kwargs", "expected"),
        [
            ({}, True),
            ({"is_active": False}, False),
            ({"failure_count": 10}, False),
            ({"deleted_at": NOW}, False),
        ],
    )
    def test_is_dispatchable(self, kwargs: dict, expected: bool) -> None:
        assert self._endpoint(**kwargs).is_dispatchable(10) is expected


class TestWebhookDelivery:
    def _delivery(self, **kwargs) -> WebhookDelivery:
        values = {
            "tenant_id": "t1",
            "endpoint_id": "ep",
            "event": "order.created",
            "event_id": "e1",
            "status": "failed",
            "attempt_count": 1,
            "max_attempts": 3,
            "request_url": "https://example.com/hook",
            "next_retry_at": NOW,
        }
        values.update(kwargs)
        return WebhookDelivery(**values)

    def test_should_retry(self) -> None:
        assert self._delivery().should_retry(NOW)
        assert not self._delivery().should_retry(NOW - timedelta(seconds=1))
        assert not self._delivery(attempt_count=3).should_retry(NOW)
        assert not self._delivery(status="pending").should_retry(NOW)

    def test_is_terminal(self) -> None:
        assert not self._delivery().is_terminal
        assert self._delivery(attempt_count=3).is_terminal
        assert self._delivery(status="delivered").is_terminal
        assert not self._delivery(status="delivering", attempt_count=3).is_terminal


class TestWebhookRateLimit:
    def test_is_limited(self) -> None:
        row = WebhookRateLimit(
            tenant_id="t1",
            endpoint_id="ep",
            window_start=NOW,
            window_end=NOW + timedelta(hours=1),
            request_count=1000,
            limit=1000,
        )
        assert row.is_limited(NOW + timedelta(minutes=30))
        assert not row.is_limited(NOW + timedelta(hours=1))
        row.request_count = 999
        assert not row.is_limited(NOW)
