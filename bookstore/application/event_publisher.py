"""Event publication with an outbox fallback.

``EventPublisher.publish`` hands a record to the broker in the background
and returns an ``asyncio.Future`` the caller may await or ignore. Broker
failures are retried ``producer_retries`` times; a record that still
cannot be written goes to the ``outbox_events`` table, where
``OutboxRelay`` keeps retrying until it is delivered or dead-lettered.
Nothing in this module raises into the caller of ``publish``.

Records sharing a topic and key form a lane. A record is not sent before
the previous record of its lane finished, retries and outbox hand-off
included, and while a lane has rows waiting in the outbox its new
records queue up behind them in the outbox.
"""

import asyncio
import json
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from bookstore.domain.base import DomainEvent
from bookstore.infrastructure.broker import (
    DEAD_LETTER_TOPIC,
    ORDERS_TOPIC,
    MessageBroker,
    RecordMetadata,
    get_broker,
)
from bookstore.infrastructure.config import settings
from bookstore.infrastructure.database import SessionFactory, get_session_factory, with_transaction
from bookstore.infrastructure.repositories import OutboxRepository

logger = structlog.get_logger()

Lane = tuple[str, str]


def encode(value: dict[str, Any]) -> bytes:
    """Serialize a record value as UTF-8 JSON."""
    return json.dumps(value, default=str).encode("utf-8")


# ============================================================================
# Publisher
# ============================================================================


class EventPublisher:
    """Non-blocking producer for broker records."""

    def __init__(
        self,
        broker: MessageBroker | None = None,
        session_factory: SessionFactory | None = None,
        retries: int | None = None,
        retry_backoff_seconds: float = 0.1,
    ) -> None:
        """Initialize publisher.

        Args:
            broker: Broker to write to (defaults to the global broker).
            session_factory: Used to write outbox rows (defaults to the app database).
            retries: Extra attempts after the first failed send.
            retry_backoff_seconds: Delay between attempts.
        """
        self.broker = broker or get_broker()
        self._session_factory = session_factory
        self.retries = settings.producer_retries if retries is None else retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self._in_flight: set[asyncio.Task[RecordMetadata | None]] = set()
        self._tails: dict[Lane, asyncio.Task[RecordMetadata | None]] = {}
        self._outboxed: set[Lane] = set()

    @property
    def session_factory(self) -> SessionFactory:
        return self._session_factory or get_session_factory()

    def publish(
        self, topic: str, key: str | None, value: dict[str, Any]
    ) -> "asyncio.Future[RecordMetadata | None]":
        """Publish a record in the background.

        Args:
            topic: Destination topic.
            key: Partitioning key; records with the same key keep their order.
            value: JSON-serializable record value.

        Returns:
            Future resolving to the record metadata, or None when the
            record was handed to the outbox instead.
        """
        previous = self._tails.get((topic, key)) if key is not None else None
        task = asyncio.ensure_future(self._deliver_after(previous, topic, key, value))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        if key is not None:
            lane = (topic, key)
            self._tails[lane] = task
            task.add_done_callback(lambda done: self._release(lane, done))
        return task

    def publish_event(self, event: DomainEvent) -> "asyncio.Future[RecordMetadata | None]":
        """Publish a domain event to the orders topic keyed by aggregate id."""
        return self.publish(ORDERS_TOPIC, event.aggregate_id or None, event.to_dict())

    async def flush(self) -> None:
        """Wait for every publish started so far."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _release(self, lane: Lane, task: "asyncio.Task[RecordMetadata | None]") -> None:
        if self._tails.get(lane) is task:
            del self._tails[lane]

    async def _deliver_after(
        self,
        previous: "asyncio.Task[RecordMetadata | None] | None",
        topic: str,
        key: str | None,
        value: dict[str, Any],
    ) -> RecordMetadata | None:
        if previous is not None:
            await asyncio.wait([previous])
        if await self._behind_outbox(topic, key):
            logger.info("Record queued behind outbox", topic=topic, key=key)
            await self._to_outbox(topic, key, value, None)
            return None
        return await self._deliver(topic, key, value)

    async def _behind_outbox(self, topic: str, key: str | None) -> bool:
        """True while earlier records of the lane still wait in the outbox."""
        if key is None or (topic, key) not in self._outboxed:
            return False

        async def work(session: AsyncSession) -> bool:
            return await OutboxRepository(session).has_pending(topic, key)

        try:
            pending = await with_transaction(self.session_factory, work)
        except Exception as e:
            logger.warning("Outbox lookup failed", topic=topic, key=key, error=str(e))
            return True
        if not pending:
            self._outboxed.discard((topic, key))
        return pending

    async def _deliver(self, topic: str, key: str | None, value: dict[str, Any]) -> RecordMetadata | None:
        payload = encode(value)
        error: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                metadata = await self.broker.send(topic, key, payload)
                logger.debug(
                    "Record published",
                    topic=topic,
                    key=key,
                    partition=metadata.partition,
                    offset=metadata.offset,
                )
                return metadata
            except Exception as e:
                error = e
                logger.warning(
                    "Publish attempt failed",
                    topic=topic,
                    key=key,
                    attempt=attempt + 1,
                    error=str(e),
                )
                if attempt < self.retries and self.retry_backoff_seconds > 0:
                    await asyncio.sleep(self.retry_backoff_seconds)

        await self._to_outbox(topic, key, value, error)
        return None

    async def _to_outbox(
        self, topic: str, key: str | None, value: dict[str, Any], error: Exception | None
    ) -> None:
        async def work(session: AsyncSession) -> int:
            row = await OutboxRepository(session).add(topic, key, value, str(error) if error else None)
            return row.id

        try:
            outbox_id = await with_transaction(self.session_factory, work)
        except Exception as e:
            logger.error(
                "Record lost, outbox write failed",
                topic=topic,
                key=key,
                error=str(e),
            )
            return

        if key is not None:
            self._outboxed.add((topic, key))
        logger.warning("Record moved to outbox", topic=topic, key=key, outbox_id=outbox_id)


# ============================================================================
# Outbox Relay
# ============================================================================


class OutboxRelay:
    """Retries outbox rows until they reach the broker."""

    def __init__(
        self,
        broker: MessageBroker | None = None,
        session_factory: SessionFactory | None = None,
        max_attempts: int | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        self.broker = broker or get_broker()
        self._session_factory = session_factory
        self.max_attempts = max_attempts or settings.outbox_max_attempts
        self.interval_seconds = interval_seconds or settings.outbox_relay_interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def session_factory(self) -> SessionFactory:
        return self._session_factory or get_session_factory()

    async def relay_pending(self, limit: int = 100) -> dict[str, int]:
        """Try to deliver pending outbox rows once.

        Rows are tried in insertion order. After a row of a keyed lane
        fails, the later rows of that lane wait for the next pass.

        Returns:
            Counts of rows ``delivered``, ``retrying`` and ``dead``.
        """

        async def work(session: AsyncSession) -> dict[str, int]:
            counts = {"delivered": 0, "retrying": 0, "dead": 0}
            blocked: set[Lane] = set()
            for row in await OutboxRepository(session).pending(limit):
                if row.key is not None and (row.topic, row.key) in blocked:
                    counts["retrying"] += 1
                    continue
                try:
                    await self.broker.send(row.topic, row.key, encode(row.payload))
                except Exception as e:
                    row.attempts += 1
                    row.last_error = str(e)
                    if row.attempts >= self.max_attempts:
                        row.status = "dead"
                        counts["dead"] += 1
                        await self._dead_letter(row.id, row.topic, row.key, row.payload, str(e))
                    else:
                        counts["retrying"] += 1
                        if row.key is not None:
                            blocked.add((row.topic, row.key))
                    continue
                row.attempts += 1
                row.status = "delivered"
                row.last_error = None
                counts["delivered"] += 1
            return counts

        counts = await with_transaction(self.session_factory, work)
        if any(counts.values()):
            logger.info("Outbox relay pass", **counts)
        return counts

    async def _dead_letter(
        self, outbox_id: int, topic: str, key: str | None, payload: dict[str, Any], error: str
    ) -> None:
        envelope = {
            "source_topic": topic,
            "key": key,
            "value": payload,
            "outbox_id": outbox_id,
            "error": error,
        }
        try:
            await self.broker.send(DEAD_LETTER_TOPIC, key, encode(envelope))
        except Exception as e:
            logger.error("Outbox dead-letter publish failed", outbox_id=outbox_id, error=str(e))
            return
        logger.error("Outbox record dead-lettered", outbox_id=outbox_id, topic=topic)

    async def run_forever(self) -> None:
        """Relay every ``interval_seconds`` until cancelled."""
        while True:
            try:
                await self.relay_pending()
            except Exception:
                logger.exception("Outbox relay failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run_forever(), name="outbox-relay")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None


# Global publisher instance
_publisher: EventPublisher | None = None


def get_event_publisher() -> EventPublisher:
    """Get event publisher singleton."""
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher


def reset_event_publisher() -> None:
    """Reset event publisher (for testing)."""
    global _publisher
    _publisher = None
