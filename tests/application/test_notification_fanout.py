"""Tests for NotificationService and the notification fan-out consumer."""

import json

from bookstore.application.notification_fanout import NotificationFanout
from bookstore.application.notification_service import NotificationService
from bookstore.domain.entities import Order
from bookstore.domain.state_machines import OrderStatus
from bookstore.domain.value_objects import Money
from bookstore.infrastructure.broker import DEAD_LETTER_TOPIC, NOTIFICATIONS_TOPIC
from bookstore.infrastructure.push import BROADCAST_DESTINATION, USER_DESTINATION


def make_order(status: OrderStatus = OrderStatus.NEW_ORDER) -> Order:
    return Order(
        id=5,
        order_number="ORD-1700000000000-BEEF",
        user_id=7,
        total_amount=Money(2500),
        status=status,
        payment_method="CARD",
    )


class TestNotificationService:
    """Tests for routing notifications."""

    async def test_order_created_published_with_key(self, notifications, publisher, broker):
        await notifications.order_created(make_order(), "alice@example.com")
        await publisher.flush()

        (record,) = broker.records(NOTIFICATIONS_TOPIC)
        assert record.key == "created_5"
        message = json.loads(record.value)
        assert message["type"] == "ORDER_CREATED"
        assert message["user_id"] == 7
        assert message["metadata"]["totalAmount"] == "25.00"
        assert message["metadata"]["trackingUrl"] == "/order-history"
        assert message["read"] is False

    async def test_order_created_emailed_when_broker_disabled(self, publisher, push_hub, mailer, broker):
        service = NotificationService(publisher=publisher, push_hub=push_hub, mailer=mailer, broker_enabled=False)

        await service.order_created(make_order(), "alice@example.com")
        await publisher.flush()

        assert broker.records(NOTIFICATIONS_TOPIC) == []
        (email,) = mailer.sent_emails
        assert email["to"] == "alice@example.com"
        assert email["subject"] == "Order Confirmation - ORD-1700000000000-BEEF"

    async def test_status_changed_pushes_directly_and_publishes(self, notifications, publisher, push_hub, broker):
        subscription = push_hub.subscribe(user_id=7)

        await notifications.status_changed(make_order(OrderStatus.DISPATCHED))
        await publisher.flush()

        direct = subscription.queue.get_nowait()
        assert direct.destination == USER_DESTINATION
        assert direct.payload["title"] == "Order Dispatched! 🚚"
        assert direct.payload["metadata"]["status"] == "DISPATCHED"
        assert [record.key for record in broker.records(NOTIFICATIONS_TOPIC)] == ["status_5"]

    async def test_general_keyed_by_user(self, notifications, publisher, broker):
        await notifications.general(7, "Hello", "Welcome back")
        await publisher.flush()

        (record,) = broker.records(NOTIFICATIONS_TOPIC)
        assert record.key == "general_7"
        assert json.loads(record.value)["type"] == "GENERAL"

    async def test_publish_failure_is_not_raised(self, notifications, publisher, broker):
        broker.available = False

        await notifications.payment_succeeded(make_order())
        await publisher.flush()

        assert broker.records(NOTIFICATIONS_TOPIC) == []


class TestNotificationFanout:
    """Tests for delivering notification records to push clients."""

    async def test_broadcast_and_user_delivery(self, notifications, publisher, broker, push_hub):
        watcher = push_hub.subscribe()
        owner = push_hub.subscribe(user_id=7)
        fanout = NotificationFanout(broker=broker, push_hub=push_hub, backoff_seconds=0)

        await notifications.order_created(make_order())
        await publisher.flush()
        assert await fanout.poll_once() == 1

        broadcast = watcher.queue.get_nowait()
        assert broadcast.destination == BROADCAST_DESTINATION
        assert broadcast.payload["type"] == "ORDER_CREATED"
        owner_messages = [owner.queue.get_nowait() for _ in range(owner.queue.qsize())]
        assert {m.destination for m in owner_messages} == {BROADCAST_DESTINATION, USER_DESTINATION}
        assert watcher.queue.empty()

    async def test_malformed_record_dead_lettered(self, broker, push_hub):
        fanout = NotificationFanout(broker=broker, push_hub=push_hub, backoff_seconds=0)
        await broker.send(NOTIFICATIONS_TOPIC, "created_1", b'{"type": "ORDER_CREATED"}')

        assert await fanout.poll_once() == 1

        assert push_hub.sent == []
        (dead,) = broker.records(DEAD_LETTER_TOPIC)
        assert json.loads(dead.value)["source_topic"] == NOTIFICATIONS_TOPIC

    async def test_unsubscribed_clients_receive_nothing(self, notifications, publisher, broker, push_hub):
        subscription = push_hub.subscribe(user_id=7)
        push_hub.unsubscribe(subscription.id)
        fanout = NotificationFanout(broker=broker, push_hub=push_hub, backoff_seconds=0)

        await notifications.general(7, "Hi", "there")
        await publisher.flush()
        await fanout.poll_once()

        assert subscription.queue.empty()
        assert len(push_hub.sent) == 2
