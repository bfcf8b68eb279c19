"""Tests for IncomingProcessor — verify, persist, deduplicate, handle."""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import pytest
from prometheus_client import CollectorRegistry
from sqlalchemy import select

from webhook_service.engine.incoming.processor import IncomingProcessor, dedup_key
from webhook_service.engine.incoming.providers import BkashHandler, StripeHandler
from webhook_service.engine.incoming.registry import ProviderRegistry
from webhook_service.engine.models.base import utcnow
from webhook_service.engine.models.incoming import WebhookIncoming
from webhook_service.errors.webhook_errors import WebhookError
from webhook_service.metrics.collector import EngineMetrics, MetricsCollector
from webhook_service.utils.signing import sign

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
BKASH_SECRET = "bkash-secret"


def _bkash(event: str = "payment.success", event_id: str = "trx-1") -> tuple[bytes, dict]:
    body = json.dumps({"event": event, "event_id": event_id, "data": {"amount": 500}}).encode()
    return body, {"X-Bkash-Signature": sign(body, BKASH_SECRET), "Authorization": "Bearer x"}


async def _rows(engine) -> list[WebhookIncoming]:
    async with engine.datastore.session() as session:
        result = await session.execute(
            select(WebhookIncoming).order_by(WebhookIncoming.created_at)
        )
        return list(result.scalars().all())


@pytest.fixture
def registry(engine) -> CollectorRegistry:
    reg = CollectorRegistry()
    engine._metrics = EngineMetrics(MetricsCollector(reg))
    return reg


class TestReceive:
    async def test_accepts_verified(self, engine, registry) -> None:
        body, headers = _bkash()
        result = await engine.incoming_processor.receive(
            TENANT, "bkash", body, headers, ip_address="10.0.0.1", user_agent="bKash/1.0"
        )

        assert not result.duplicate
        row = result.incoming
        assert row.is_verified
        assert row.event == "payment.success"
        assert row.event_id == "trx-1"
        assert row.dedup_key == "bkash:trx-1"
        assert row.ip_address == "10.0.0.1"
        assert row.user_agent == "bKash/1.0"
        assert row.signature == headers["X-Bkash-Signature"]
        assert "authorization" not in row.headers
        assert "x-bkash-signature" in row.headers
        assert registry.get_sample_value(
            "webhook_incoming_total", {"provider": "bkash", "result": "accepted"}
        ) == 1.0

        await engine.drain()
        stored = await engine.incoming_processor.get(TENANT, row.id)
        assert stored.is_processed
        assert stored.processed_at is not None
        assert stored.processing_error == ""

    async def test_provider_tag_case_insensitive(self, engine) -> None:
        body, headers = _bkash()
        result = await engine.incoming_processor.receive(TENANT, "BKash", body, headers)
        assert result.incoming.provider == "bkash"

    async def test_invalid_signature_persisted_and_rejected(self, engine, registry) -> None:
        body, _ = _bkash()
        for _attempt in range(2):
            with pytest.raises(WebhookError) as exc_info:
                await engine.incoming_processor.receive(
                    TENANT, "bkash", body, {"X-Bkash-Signature": "forged"}
                )
            assert exc_info.value.status_code == 401

        rows = await _rows(engine)
        assert len(rows) == 2
        for row in rows:
            assert not row.is_verified
            assert not row.is_processed
            assert row.dedup_key is None
            assert row.signature == "forged"
        assert registry.get_sample_value(
            "webhook_incoming_total", {"provider": "bkash", "result": "invalid_signature"}
        ) == 2.0

    async def test_unsigned_rejected(self, engine) -> None:
        body, _ = _bkash()
        with pytest.raises(WebhookError) as exc_info:
            await engine.incoming_processor.receive(TENANT, "bkash", body, {})
        assert exc_info.value.status_code == 401

    async def test_provider_without_secret_rejects(self, engine) -> None:
        body = json.dumps({"event": "payment.success", "event_id": "n-1"}).encode()
        with pytest.raises(WebhookError) as exc_info:
            await engine.incoming_processor.receive(
                TENANT, "nagad", body, {"X-Nagad-Signature": sign(body, "")}
            )
        assert exc_info.value.status_code == 401

    async def test_unknown_provider(self, engine) -> None:
        body, headers = _bkash()
        with pytest.raises(WebhookError) as exc_info:
            await engine.incoming_processor.receive(TENANT, "square", body, headers)
        assert exc_info.value.status_code == 404
        assert await _rows(engine) == []

    async def test_missing_tenant(self, engine) -> None:
        body, headers = _bkash()
        with pytest.raises(WebhookError) as exc_info:
            await engine.incoming_processor.receive("", "bkash", body, headers)
        assert exc_info.value.status_code == 400

    async def test_malformed_verified_body(self, engine, registry) -> None:
        body = b"not json"
        with pytest.raises(WebhookError) as exc_info:
            await engine.incoming_processor.receive(
                TENANT, "bkash", body, {"X-Bkash-Signature": sign(body, BKASH_SECRET)}
            )
        assert exc_info.value.status_code == 400

        [row] = await _rows(engine)
        assert row.is_verified
        assert row.is_processed
        assert row.dedup_key is None
        assert row.processing_error == "malformed webhook payload"
        assert registry.get_sample_value(
            "webhook_incoming_total", {"provider": "bkash", "result": "malformed"}
        ) == 1.0

    async def test_duplicate_acknowledged(self, engine, registry) -> None:
        body, headers = _bkash()
        first = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        await engine.drain()
        second = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)

        assert second.duplicate
        assert second.incoming.id == first.incoming.id
        assert len(await _rows(engine)) == 1
        assert registry.get_sample_value(
            "webhook_incoming_total", {"provider": "bkash", "result": "duplicate"}
        ) == 1.0

    async def test_same_event_id_handled_once_per_tenant(self, engine) -> None:
        body, headers = _bkash(event_id="trx-shared")
        first = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        other = await engine.incoming_processor.receive(OTHER_TENANT, "bkash", body, headers)
        await engine.drain()

        assert not other.duplicate
        assert other.incoming.id != first.incoming.id
        assert other.incoming.tenant_id == OTHER_TENANT
        for tenant, result in ((TENANT, first), (OTHER_TENANT, other)):
            stored = await engine.incoming_processor.get(tenant, result.incoming.id)
            assert stored.is_processed

        again = await engine.incoming_processor.receive(OTHER_TENANT, "bkash", body, headers)
        assert again.duplicate
        assert again.incoming.id == other.incoming.id
        assert len(await _rows(engine)) == 2

    async def test_stripe(self, engine) -> None:
        body = json.dumps(
            {
                "id": "evt_1",
                "type": "charge.succeeded",
                "data": {"object": {"id": "ch_1"}},
            }
        ).encode()
        headers = {"Stripe-Signature": StripeHandler.signature_for(body, "whsec_stripe_test")}
        result = await engine.incoming_processor.receive(TENANT, "stripe", body, headers)
        assert result.incoming.dedup_key == "stripe:evt_1"
        await engine.drain()


class TestProcess:
    async def test_publishes_and_dispatches(self, engine, make_endpoint) -> None:
        endpoint = await make_endpoint(events=["payment.succeeded"])
        body, headers = _bkash()
        result = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        await engine.drain()

        for _ in range(100):
            items, total = await engine.delivery_service.list(TENANT)
            if total:
                break
            await asyncio.sleep(0.02)
        assert total == 1
        delivery = items[0]
        assert delivery.endpoint_id == endpoint.id
        assert delivery.event == "payment.succeeded"
        assert delivery.event_id == result.incoming.id

        envelope = json.loads(delivery.request_body)
        assert envelope["data"]["provider"] == "bkash"
        assert envelope["data"]["provider_event_id"] == "trx-1"
        assert envelope["data"]["object"] == {"amount": 500}
        await engine.drain()

    async def test_unmapped_event_marked_processed(self, engine, make_endpoint) -> None:
        await make_endpoint(events=["payment.succeeded"])
        body, headers = _bkash(event="account.linked")
        result = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        await engine.drain()

        stored = await engine.incoming_processor.get(TENANT, result.incoming.id)
        assert stored.is_processed
        assert stored.processing_error == ""
        await asyncio.sleep(0.05)
        assert (await engine.delivery_service.list(TENANT))[1] == 0

    async def test_process_once(self, engine) -> None:
        body, headers = _bkash()
        result = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        await engine.drain()
        assert await engine.incoming_processor.process(result.incoming.id) is None
        assert await engine.incoming_processor.process("missing") is None

    async def test_handler_failure_recorded(self, engine) -> None:
        class Exploding(BkashHandler):
            async def handle(self, incoming, parsed):
                msg = "ledger unavailable"
                raise RuntimeError(msg)

        reg = ProviderRegistry()
        reg.register(Exploding())
        processor = IncomingProcessor(engine, reg)

        body, _ = _bkash()
        row = WebhookIncoming(
            tenant_id=TENANT,
            provider="bkash",
            is_verified=True,
            body=body.decode(),
            dedup_key=dedup_key("bkash", "trx-9"),
        )
        async with engine.datastore.session() as session:
            session.add(row)
            await session.commit()
            row_id = row.id

        processed = await processor.process(row_id)
        assert processed.is_processed
        assert processed.processing_error == "ledger unavailable"

    async def test_unverified_rows_never_processed(self, engine) -> None:
        body, _ = _bkash()
        with pytest.raises(WebhookError):
            await engine.incoming_processor.receive(
                TENANT, "bkash", body, {"X-Bkash-Signature": "forged"}
            )
        [row] = await _rows(engine)
        assert await engine.incoming_processor.process(row.id) is None


class TestRecover:
    async def test_dropped_hand_off_resubmitted(self, engine) -> None:
        pool = engine.incoming_pool
        await pool.stop()
        body, headers = _bkash(event_id="trx-lost")
        result = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        await pool.start()

        # Too recent: the original hand-off may still be queued
        assert await engine.incoming_processor.recover() == 0

        later = utcnow() + timedelta(seconds=engine.config.incoming.stale_seconds + 1)
        assert await engine.incoming_processor.recover(now=later) == 1
        await engine.drain()

        stored = await engine.incoming_processor.get(TENANT, result.incoming.id)
        assert stored.is_processed
        assert await engine.incoming_processor.recover(now=later) == 0

        redelivery = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        assert redelivery.duplicate

    async def test_skips_unverified_and_processed(self, engine) -> None:
        body, headers = _bkash()
        await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        await engine.drain()
        with pytest.raises(WebhookError):
            await engine.incoming_processor.receive(
                TENANT, "bkash", body, {"X-Bkash-Signature": "forged"}
            )

        later = utcnow() + timedelta(hours=1)
        assert await engine.incoming_processor.recover(now=later) == 0


class TestGet:
    async def test_tenant_scoped(self, engine) -> None:
        body, headers = _bkash()
        result = await engine.incoming_processor.receive(TENANT, "bkash", body, headers)
        await engine.drain()
        assert await engine.incoming_processor.get(TENANT, result.incoming.id) is not None
        assert await engine.incoming_processor.get(OTHER_TENANT, result.incoming.id) is None


def test_dedup_key() -> None:
    assert dedup_key("Stripe", "evt_1") == "stripe:evt_1"
