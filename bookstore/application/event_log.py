"""Order event audit log.

Consumes ``orders.events`` in its own consumer group and stores one row
per domain event in ``order_event_log``. Redelivered events are ignored
by event id.
"""

import json
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.domain.events import get_event_class
from bookstore.infrastructure.broker import ORDERS_TOPIC, BrokerRecord, MessageBroker, get_broker
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.consumer import NonRetryableError, PartitionedConsumer
from bookstore.infrastructure.database import SessionFactory, get_session_factory, with_transaction
from bookstore.infrastructure.repositories import OrderEventLogRepository

logger = structlog.get_logger()

EVENT_LOG_GROUP = "order-event-log-group"


def decode_event(value: bytes) -> dict[str, Any]:
    """Parse and check a serialized domain event.

    Raises:
        NonRetryableError: If the record is not a known domain event.
    """
    try:
        data = json.loads(value)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise NonRetryableError(f"Undecodable event: {e}") from e

    if not isinstance(data, dict) or "event_id" not in data:
        raise NonRetryableError("Event has no event_id")
    if get_event_class(str(data.get("event_type"))) is None:
        raise NonRetryableError(f"Unknown event type: {data.get('event_type')}")
    return data


class OrderEventLog:
    """Audit consumer for order domain events."""

    def __init__(
        self,
        broker: MessageBroker | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.consumer = PartitionedConsumer(
            broker=broker or get_broker(),
            topic=ORDERS_TOPIC,
            group_id=EVENT_LOG_GROUP,
            handler=self.handle,
            concurrency=1,
            max_attempts=settings.consumer_max_attempts,
            backoff_seconds=settings.consumer_backoff_seconds,
        )

    @property
    def session_factory(self) -> SessionFactory:
        return self._session_factory or get_session_factory()

    async def handle(self, record: BrokerRecord) -> None:
        data = decode_event(record.value)

        async def work(session: AsyncSession) -> bool:
            return await OrderEventLogRepository(session).add_if_absent(
                event_id=data["event_id"],
                event_type=data["event_type"],
                aggregate_id=str(data.get("aggregate_id", "")),
                payload=data.get("payload") or {},
                occurred_at=datetime.fromisoformat(data["occurred_at"]),
            )

        stored = await with_transaction(self.session_factory, work)
        logger.info(
            "Order event logged" if stored else "Duplicate order event skipped",
            event_id=data["event_id"],
            event_type=data["event_type"],
            aggregate_id=data.get("aggregate_id"),
        )

    async def history(self, order_id: int) -> list[dict[str, Any]]:
        """Logged events of one order, oldest first."""

        async def work(session: AsyncSession) -> list[dict[str, Any]]:
            rows = await OrderEventLogRepository(session).list_for_aggregate(str(order_id))
            return [row.to_dict() for row in rows]

        return await with_transaction(self.session_factory, work)

    async def poll_once(self) -> int:
        return await self.consumer.poll_once()

    def start(self) -> None:
        self.consumer.start()

    async def stop(self) -> None:
        await self.consumer.stop()
