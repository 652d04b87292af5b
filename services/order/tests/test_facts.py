"""Tests for fact encoding, publishing and the order_events log subscriber."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from app import subscriber
from app.events import OrderCreated, OrderItemFact, OrderStatusChanged
from app.publisher import ORDER_EVENTS_CHANNEL, FactPublisher, encode_fact
from app.subscriber import handle_fact


class RecordingRedis:
    def __init__(self):
        self.messages = []

    async def publish(self, channel, message):
        self.messages.append((channel, message))
        return 1


def _created():
    return OrderCreated(
        order_id=uuid4(),
        user_id=uuid4(),
        order_number="ORD-20240101120000-1234",
        total_amount=Decimal("120.00"),
        items=[OrderItemFact(product_id=uuid4(), product_name="Widget", quantity=2, price=Decimal("40.00"))],
    )


def test_encode_order_created():
    fact = _created()

    message = json.loads(encode_fact(fact))

    assert message["event_type"] == "OrderCreated"
    data = message["data"]
    assert data["order_id"] == str(fact.order_id)
    assert data["order_number"] == "ORD-20240101120000-1234"
    assert Decimal(data["total_amount"]) == Decimal("120.00")
    assert data["items"][0]["product_name"] == "Widget"
    assert data["items"][0]["quantity"] == 2


def test_encode_status_changed():
    fact = OrderStatusChanged(
        order_id=uuid4(),
        user_id=uuid4(),
        old_status="Pending",
        new_status="Confirmed",
        updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    message = json.loads(encode_fact(fact))

    assert message["event_type"] == "OrderStatusChanged"
    assert message["data"]["old_status"] == "Pending"
    assert message["data"]["new_status"] == "Confirmed"


def test_facts_are_immutable():
    fact = _created()
    with pytest.raises(ValidationError):
        fact.order_number = "changed"


@pytest.mark.asyncio
async def test_publisher_writes_to_order_events():
    redis = RecordingRedis()
    fact = _created()

    await FactPublisher(redis).publish(fact)

    assert len(redis.messages) == 1
    channel, message = redis.messages[0]
    assert channel == ORDER_EVENTS_CHANNEL == "order_events"
    assert json.loads(message)["data"]["order_id"] == str(fact.order_id)


def test_subscriber_logs_received_fact(caplog):
    fact = _created()

    with caplog.at_level(logging.INFO, logger="app.subscriber"):
        event = handle_fact(encode_fact(fact))

    assert event["event_type"] == "OrderCreated"
    assert f"OrderCreated received: order={fact.order_id}" in caplog.text


@pytest.mark.parametrize(
    "raw",
    ["not json", "{}", "[1, 2]", '{"event_type": "X", "data": "oops"}', '{"event_type": "X", "data": null}'],
)
def test_subscriber_skips_malformed(raw, caplog):
    with caplog.at_level(logging.WARNING, logger="app.subscriber"):
        assert handle_fact(raw) is None
    assert "Skipped malformed fact" in caplog.text


@pytest.mark.asyncio
async def test_subscriber_loop_survives_a_failing_message(monkeypatch, caplog):
    shutdown = asyncio.Event()
    handled = []

    class FakePubSub:
        def __init__(self):
            self.messages = [
                {"type": "message", "data": "first"},
                {"type": "message", "data": "second"},
            ]

        async def subscribe(self, channel):
            pass

        async def get_message(self, ignore_subscribe_messages=True, timeout=1.0):
            if not self.messages:
                shutdown.set()
                return None
            return self.messages.pop(0)

        async def unsubscribe(self, channel):
            pass

        async def aclose(self):
            pass

    class FakeRedis:
        def pubsub(self):
            return FakePubSub()

        async def aclose(self):
            pass

    def flaky_handle(raw):
        handled.append(raw)
        if raw == "first":
            raise RuntimeError("boom")

    monkeypatch.setattr(subscriber.aioredis, "from_url", lambda url, **kwargs: FakeRedis())
    monkeypatch.setattr(subscriber, "handle_fact", flaky_handle)

    with caplog.at_level(logging.ERROR, logger="app.subscriber"):
        await subscriber.run_subscriber("redis://test", shutdown)

    assert handled == ["first", "second"]
    assert "Failed to process fact" in caplog.text
