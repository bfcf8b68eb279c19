"""Tests for domain events, the event bus and the dispatcher relay."""

from __future__ import annotations

import asyncio

import pytest

from webhook_service.notifications.events import (
    EVENT_TYPES,
    DomainEvent,
    WebhookEvent,
    is_known_event,
)
from webhook_service.notifications.service import EventBus, EventRelay


class TestEventCatalogue:
    def test_catalogue_size(self) -> None:
        assert len(EVENT_TYPES) == 17

    @pytest.mark.parametrize(
        "name", ["order.created", "payment.refunded", "inventory.low", "shipment.delivered"]
    )
    def test_known(self, name: str) -> None:
        assert is_known_event(name)

    @pytest.mark.parametrize("name", ["", "order", "order.deleted", "ORDER.CREATED", "test"])
    def test_unknown(self, name: str) -> None:
        assert not is_known_event(name)

    def test_str_enum(self) -> None:
        assert WebhookEvent.ORDER_CREATED == "order.created"


class TestDomainEvent:
    def test_defaults(self) -> None:
        e = DomainEvent(tenant_id="t1", type="order.created")
        assert e.data == {}
        assert e.event_id

    def test_frozen(self) -> None:
        e = DomainEvent(tenant_id="t1", type="order.created")
        with pytest.raises(AttributeError):
            e.type = "other"  # type: ignore[misc]

    def test_to_dict(self) -> None:
        e = DomainEvent(tenant_id="t1", type="order.created", data={"k": 1}, event_id="e1")
        assert e.to_dict() == {
            "tenant_id": "t1",
            "type": "order.created",
            "data": {"k": 1},
            "event_id": "e1",
        }


class TestEventBus:
    async def test_fan_out(self) -> None:
        bus = EventBus()
        q1 = bus.add_subscriber("a")
        q2 = bus.add_subscriber("b")
        await bus.start()

        event = DomainEvent(tenant_id="t1", type="order.created")
        assert await bus.publish(event)
        assert await asyncio.wait_for(q1.get(), timeout=2) == event
        assert await asyncio.wait_for(q2.get(), timeout=2) == event
        await bus.stop()

    async def test_remove_subscriber(self) -> None:
        bus = EventBus()
        q = bus.add_subscriber("a")
        bus.remove_subscriber("a")
        await bus.start()
        await bus.publish(DomainEvent(tenant_id="t1", type="order.created"))
        await asyncio.sleep(0.05)
        assert q.empty()
        await bus.stop()

    async def test_full_input_drops(self) -> None:
        bus = EventBus(buffer=1)
        assert await bus.publish(DomainEvent(tenant_id="t1", type="order.created"))
        assert not await bus.publish(DomainEvent(tenant_id="t1", type="order.updated"))

    async def test_start_stop_idempotent(self) -> None:
        bus = EventBus()
        await bus.start()
        await bus.start()
        assert bus.is_running
        await bus.stop()
        await bus.stop()
        assert not bus.is_running


class TestEventRelay:
    async def test_handler_receives_events(self) -> None:
        bus = EventBus()
        seen: list[DomainEvent] = []
        done = asyncio.Event()

        async def _handler(event: DomainEvent) -> None:
            seen.append(event)
            done.set()

        relay = EventRelay(bus, _handler)
        await bus.start()
        await relay.start()
        assert relay.is_running

        await bus.publish(DomainEvent(tenant_id="t1", type="payment.succeeded"))
        await asyncio.wait_for(done.wait(), timeout=2)
        assert seen[0].type == "payment.succeeded"

        await relay.stop()
        await bus.stop()
        assert not relay.is_running

    async def test_handler_failure_keeps_consuming(self) -> None:
        bus = EventBus()
        seen: list[str] = []
        done = asyncio.Event()

        async def _handler(event: DomainEvent) -> None:
            seen.append(event.type)
            if event.type == "order.created":
                msg = "boom"
                raise RuntimeError(msg)
            done.set()

        relay = EventRelay(bus, _handler, key="flaky")
        await bus.start()
        await relay.start()
        await bus.publish(DomainEvent(tenant_id="t1", type="order.created"))
        await bus.publish(DomainEvent(tenant_id="t1", type="order.updated"))
        await asyncio.wait_for(done.wait(), timeout=2)
        assert seen == ["order.created", "order.updated"]
        await relay.stop()
        await bus.stop()
