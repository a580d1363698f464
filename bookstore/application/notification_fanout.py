"""Notification fan-out consumer.

Consumes ``notifications.events`` with a pool of workers and delivers each
message to every connected client on ``/topic/notifications``, and to the
target user's ``/queue/notifications`` when the message names one.
Malformed records go to the dead-letter topic without retries.
"""

import structlog
from pydantic import ValidationError as PydanticValidationError

from bookstore.application.notification_service import NotificationMessage
from bookstore.infrastructure.broker import NOTIFICATIONS_TOPIC, BrokerRecord, MessageBroker, get_broker
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.consumer import NonRetryableError, PartitionedConsumer
from bookstore.infrastructure.push import BROADCAST_DESTINATION, USER_DESTINATION, PushHub, get_push_hub

logger = structlog.get_logger()


class NotificationFanout:
    """Delivers notification records to the push hub."""

    def __init__(
        self,
        broker: MessageBroker | None = None,
        push_hub: PushHub | None = None,
        concurrency: int | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.push_hub = push_hub or get_push_hub()
        self.consumer = PartitionedConsumer(
            broker=broker or get_broker(),
            topic=NOTIFICATIONS_TOPIC,
            group_id=settings.consumer_group,
            handler=self.handle,
            concurrency=concurrency or settings.consumer_concurrency,
            max_attempts=max_attempts or settings.consumer_max_attempts,
            backoff_seconds=(
                settings.consumer_backoff_seconds if backoff_seconds is None else backoff_seconds
            ),
        )

    async def handle(self, record: BrokerRecord) -> None:
        """Deliver one notification record."""
        try:
            message = NotificationMessage.model_validate_json(record.value)
        except PydanticValidationError as e:
            raise NonRetryableError(f"Invalid notification payload: {e.error_count()} errors") from e

        payload = message.model_dump(mode="json")
        reached = await self.push_hub.broadcast(BROADCAST_DESTINATION, payload)
        if message.user_id is not None:
            reached += await self.push_hub.send_to_user(message.user_id, USER_DESTINATION, payload)

        logger.info(
            "Notification delivered",
            notification_id=message.id,
            type=message.type,
            user_id=message.user_id,
            key=record.key,
            clients=reached,
        )

    async def poll_once(self) -> int:
        return await self.consumer.poll_once()

    def start(self) -> None:
        self.consumer.start()

    async def stop(self) -> None:
        await self.consumer.stop()
