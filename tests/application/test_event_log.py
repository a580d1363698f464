"""Tests for the order event audit log."""

import json

import pytest

from bookstore.application.event_log import OrderEventLog, decode_event
from bookstore.domain.events import OrderCreated, OrderStatusUpdated
from bookstore.infrastructure.broker import DEAD_LETTER_TOPIC, ORDERS_TOPIC
from bookstore.infrastructure.consumer import NonRetryableError


@pytest.fixture
def event_log(broker, database) -> OrderEventLog:
    return OrderEventLog(broker=broker, session_factory=database.session_factory)


class TestDecodeEvent:
    """Tests for decoding broker records."""

    def test_valid_event(self):
        event = OrderCreated(aggregate_id="3")
        data = decode_event(json.dumps(event.to_dict()).encode())
        assert data["event_type"] == "ORDER_CREATED"

    @pytest.mark.parametrize(
        "value",
        [b"not json", b"[1, 2]", b'{"event_type": "ORDER_CREATED"}', b'{"event_id": "x", "event_type": "NOPE"}'],
    )
    def test_invalid_records(self, value):
        with pytest.raises(NonRetryableError):
            decode_event(value)


class TestOrderEventLog:
    """Tests for consuming and querying order events."""

    async def test_events_logged_in_order(self, event_log, publisher):
        await publisher.publish_event(OrderCreated(aggregate_id="9", order_number="ORD-9"))
        await publisher.publish_event(
            OrderStatusUpdated(aggregate_id="9", order_number="ORD-9", previous_status="NEW_ORDER", status="PACKED")
        )

        assert await event_log.poll_once() == 2

        history = await event_log.history(9)
        assert [entry["event_type"] for entry in history] == ["ORDER_CREATED", "ORDER_STATUS_UPDATED"]
        assert history[1]["payload"]["status"] == "PACKED"
        assert await event_log.history(10) == []

    async def test_redelivered_event_stored_once(self, event_log, publisher):
        event = OrderCreated(aggregate_id="9", order_number="ORD-9")
        await publisher.publish_event(event)
        await publisher.publish_event(event)

        assert await event_log.poll_once() == 2

        history = await event_log.history(9)
        assert len(history) == 1
        assert history[0]["event_id"] == str(event.event_id)

    async def test_bad_record_dead_lettered(self, event_log, broker):
        await broker.send(ORDERS_TOPIC, "9", b"not json")

        assert await event_log.poll_once() == 1

        (dead,) = broker.records(DEAD_LETTER_TOPIC)
        assert json.loads(dead.value)["consumer_group"] == "order-event-log-group"
