"""Tests for EventPublisher and OutboxRelay."""

import json

from bookstore.application.event_publisher import EventPublisher, OutboxRelay
from bookstore.domain.events import OrderCreated
from bookstore.domain.exceptions import BrokerPublishError
from bookstore.infrastructure.broker import DEAD_LETTER_TOPIC, ORDERS_TOPIC, InMemoryBroker
from bookstore.infrastructure.database import with_transaction
from bookstore.infrastructure.repositories import OutboxRepository


class FlakyBroker(InMemoryBroker):
    """Broker that refuses writes to selected topics."""

    def __init__(self, failing_topics: set[str]) -> None:
        super().__init__()
        self.failing_topics = failing_topics

    async def send(self, topic, key, value):
        if topic in self.failing_topics:
            raise BrokerPublishError(f"Topic {topic} unavailable")
        return await super().send(topic, key, value)


class StallingBroker(InMemoryBroker):
    """Broker that refuses the next ``failures`` writes, then recovers."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def send(self, topic, key, value):
        if self.failures > 0:
            self.failures -= 1
            raise BrokerPublishError("Leader not available")
        return await super().send(topic, key, value)


async def outbox_rows(database, status):
    async def work(session):
        return [row.to_dict() for row in await OutboxRepository(session).list_by_status(status)]

    return await with_transaction(database.session_factory, work)


class TestPublish:
    """Tests for background publishing."""

    async def test_publish_returns_awaitable_metadata(self, publisher, broker):
        metadata = await publisher.publish(ORDERS_TOPIC, "42", {"hello": "world"})

        assert metadata.topic == ORDERS_TOPIC
        (record,) = broker.records(ORDERS_TOPIC)
        assert record.key == "42"
        assert json.loads(record.value) == {"hello": "world"}

    async def test_same_key_keeps_order(self, publisher, broker):
        for n in range(5):
            publisher.publish(ORDERS_TOPIC, "order-1", {"n": n})
        await publisher.flush()

        records = broker.records(ORDERS_TOPIC)
        assert len({record.partition for record in records}) == 1
        assert [json.loads(record.value)["n"] for record in records] == [0, 1, 2, 3, 4]

    async def test_publish_event_keys_by_aggregate(self, publisher, broker):
        event = OrderCreated(aggregate_id="17", aggregate_type="order", order_number="ORD-1-AAAA")

        await publisher.publish_event(event)

        (record,) = broker.records(ORDERS_TOPIC)
        assert record.key == "17"
        assert json.loads(record.value)["event_id"] == str(event.event_id)

    async def test_flush_waits_for_in_flight(self, publisher):
        publisher.publish(ORDERS_TOPIC, "1", {})
        publisher.publish(ORDERS_TOPIC, "2", {})

        await publisher.flush()

        assert publisher.in_flight == 0

    async def test_unavailable_broker_falls_back_to_outbox(self, publisher, broker, database):
        broker.available = False

        metadata = await publisher.publish(ORDERS_TOPIC, "42", {"hello": "world"})

        assert metadata is None
        (row,) = await outbox_rows(database, "pending")
        assert row["topic"] == ORDERS_TOPIC
        assert row["key"] == "42"
        assert row["payload"] == {"hello": "world"}
        assert "unavailable" in row["last_error"]


class TestOutboxRelay:
    """Tests for relaying outbox rows."""

    async def test_relay_delivers_when_broker_returns(self, publisher, broker, database):
        broker.available = False
        await publisher.publish(ORDERS_TOPIC, "42", {"hello": "world"})
        broker.available = True
        relay = OutboxRelay(broker=broker, session_factory=database.session_factory, max_attempts=3)

        counts = await relay.relay_pending()

        assert counts == {"delivered": 1, "retrying": 0, "dead": 0}
        (record,) = broker.records(ORDERS_TOPIC)
        assert json.loads(record.value) == {"hello": "world"}
        assert await outbox_rows(database, "pending") == []
        assert len(await outbox_rows(database, "delivered")) == 1

    async def test_relay_dead_letters_after_max_attempts(self, database):
        broker = FlakyBroker(failing_topics={ORDERS_TOPIC})
        publisher = EventPublisher(
            broker=broker,
            session_factory=database.session_factory,
            retries=0,
            retry_backoff_seconds=0,
        )
        relay = OutboxRelay(broker=broker, session_factory=database.session_factory, max_attempts=2)
        await publisher.publish(ORDERS_TOPIC, "42", {"hello": "world"})

        first = await relay.relay_pending()
        second = await relay.relay_pending()

        assert first == {"delivered": 0, "retrying": 1, "dead": 0}
        assert second == {"delivered": 0, "retrying": 0, "dead": 1}
        (row,) = await outbox_rows(database, "dead")
        assert row["attempts"] == 2
        (dead,) = broker.records(DEAD_LETTER_TOPIC)
        envelope = json.loads(dead.value)
        assert envelope["source_topic"] == ORDERS_TOPIC
        assert envelope["outbox_id"] == row["id"]
        assert envelope["value"] == {"hello": "world"}

    async def test_relay_with_nothing_pending(self, broker, database):
        relay = OutboxRelay(broker=broker, session_factory=database.session_factory)

        assert await relay.relay_pending() == {"delivered": 0, "retrying": 0, "dead": 0}


class TestKeyOrdering:
    """Records sharing a key reach the broker in publish order."""

    async def test_retried_record_is_not_overtaken(self, database):
        broker = StallingBroker(failures=1)
        publisher = EventPublisher(
            broker=broker,
            session_factory=database.session_factory,
            retries=2,
            retry_backoff_seconds=0.05,
        )

        first = publisher.publish(ORDERS_TOPIC, "42", {"seq": 1})
        second = publisher.publish(ORDERS_TOPIC, "42", {"seq": 2})
        await publisher.flush()

        assert (await first).offset == 0
        assert (await second).offset == 1
        assert [json.loads(r.value)["seq"] for r in broker.records(ORDERS_TOPIC)] == [1, 2]

    async def test_other_keys_do_not_wait(self, database):
        broker = StallingBroker(failures=1)
        publisher = EventPublisher(
            broker=broker,
            session_factory=database.session_factory,
            retries=1,
            retry_backoff_seconds=0.05,
        )

        first = publisher.publish(ORDERS_TOPIC, "42", {"seq": 1})
        second = publisher.publish(ORDERS_TOPIC, "43", {"seq": 2})

        assert await second is not None
        assert not first.done()
        await publisher.flush()
        assert await first is not None

    async def test_record_queues_behind_outboxed_lane(self, publisher, broker, database):
        broker.available = False
        await publisher.publish(ORDERS_TOPIC, "42", {"seq": 1})
        broker.available = True

        queued = await publisher.publish(ORDERS_TOPIC, "42", {"seq": 2})

        assert queued is None
        assert broker.records(ORDERS_TOPIC) == []
        assert [row["payload"]["seq"] for row in await outbox_rows(database, "pending")] == [1, 2]

        relay = OutboxRelay(broker=broker, session_factory=database.session_factory, max_attempts=3)
        assert await relay.relay_pending() == {"delivered": 2, "retrying": 0, "dead": 0}

        direct = await publisher.publish(ORDERS_TOPIC, "42", {"seq": 3})

        assert direct is not None
        assert [json.loads(r.value)["seq"] for r in broker.records(ORDERS_TOPIC)] == [1, 2, 3]

    async def test_relay_holds_lane_after_failure(self, publisher, broker, database):
        broker.available = False
        await publisher.publish(ORDERS_TOPIC, "42", {"seq": 1})
        await publisher.publish(ORDERS_TOPIC, "42", {"seq": 2})
        await publisher.publish(ORDERS_TOPIC, "43", {"seq": 3})
        stalling = StallingBroker(failures=1)
        relay = OutboxRelay(broker=stalling, session_factory=database.session_factory, max_attempts=3)

        first = await relay.relay_pending()
        second = await relay.relay_pending()

        assert first == {"delivered": 1, "retrying": 2, "dead": 0}
        assert second == {"delivered": 2, "retrying": 0, "dead": 0}
        lane = [json.loads(r.value)["seq"] for r in stalling.records(ORDERS_TOPIC) if r.key == "42"]
        assert lane == [1, 2]
