"""Message broker port and the in-memory adapter.

``MessageBroker`` is the port producers and consumers talk to. Topics are
split into partitions; records with the same key always land on the same
partition, so the events of one order keep their publish order. A
consumer group stores the position of the last record it handled per
partition, and only after the record was handled.

``RedisStreamBroker`` (``redis_broker.py``) is the production adapter.
``InMemoryBroker`` keeps everything in the process and is used by tests;
``available`` can be switched off to simulate a broker outage.
"""

import asyncio
import itertools
import zlib
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from bookstore.domain.exceptions import BrokerPublishError
from bookstore.infrastructure.config import settings

logger = structlog.get_logger()


# ============================================================================
# Topics
# ============================================================================


ORDERS_TOPIC = "orders.events"
NOTIFICATIONS_TOPIC = "notifications.events"
DEAD_LETTER_TOPIC = "dlq.events"

# Declared for saga orchestration; nothing produces to or consumes them yet.
SAGA_TOPICS = (
    "saga.failed",
    "saga.compensated",
    "saga.inventory.reserved",
    "saga.payment.processed",
    "saga.shipment.created",
)

ALL_TOPICS = (ORDERS_TOPIC, NOTIFICATIONS_TOPIC, DEAD_LETTER_TOPIC, *SAGA_TOPICS)


# ============================================================================
# Records
# ============================================================================


@dataclass(frozen=True)
class RecordMetadata:
    """Where a record was written."""

    topic: str
    partition: int
    offset: int | str


@dataclass(frozen=True)
class BrokerRecord:
    """A record stored in a topic partition.

    ``offset`` is the record's position inside its partition: a sequence
    number in memory, a stream entry id on Redis.
    """

    topic: str
    partition: int
    offset: int | str
    key: str | None
    value: bytes
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def partition_for_key(key: str, partitions: int) -> int:
    """Stable partition of a key (crc32, same on every process)."""
    return zlib.crc32(key.encode("utf-8")) % partitions


# ============================================================================
# Port
# ============================================================================


class MessageBroker(ABC):
    """Abstract partitioned log shared by producers and consumer groups."""

    def __init__(self, default_partitions: int = 3) -> None:
        self.default_partitions = default_partitions
        self._round_robin = itertools.count()

    def partitions_for(self, topic: str) -> int:
        return self.default_partitions

    def partition_for(self, topic: str, key: str | None) -> int:
        """Pick a partition: stable hash of the key, round-robin without one."""
        count = self.partitions_for(topic)
        if key is None:
            return next(self._round_robin) % count
        return partition_for_key(key, count)

    @abstractmethod
    async def send(self, topic: str, key: str | None, value: bytes) -> RecordMetadata:
        """Append a record.

        Raises:
            BrokerPublishError: If the record could not be written.
        """
        ...

    @abstractmethod
    async def fetch(
        self, topic: str, partition: int, group_id: str, max_records: int = 100
    ) -> list[BrokerRecord]:
        """Read records after the group's committed position, oldest first."""
        ...

    @abstractmethod
    async def commit(self, group_id: str, record: BrokerRecord) -> None:
        """Mark ``record`` and everything before it on its partition as handled."""
        ...

    @abstractmethod
    async def lag(self, group_id: str, topic: str) -> int:
        """Records not yet committed by the group across all partitions."""
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the broker cannot be reached."""
        ...

    async def close(self) -> None:
        """Release connections."""
        return None


# ============================================================================
# In-Memory Adapter
# ============================================================================


class InMemoryBroker(MessageBroker):
    """Asyncio-friendly partitioned log living in this process."""

    def __init__(self, default_partitions: int = 3) -> None:
        super().__init__(default_partitions)
        self.available = True
        self._topics: dict[str, list[list[BrokerRecord]]] = {}
        self._committed: dict[tuple[str, str, int], int] = defaultdict(int)

    def create_topic(self, name: str, partitions: int | None = None) -> None:
        """Create a topic if it does not exist yet."""
        if name not in self._topics:
            count = partitions or self.default_partitions
            self._topics[name] = [[] for _ in range(count)]
            logger.debug("Topic created", topic=name, partitions=count)

    def partitions_for(self, topic: str) -> int:
        self.create_topic(topic)
        return len(self._topics[topic])

    async def send(self, topic: str, key: str | None, value: bytes) -> RecordMetadata:
        if not self.available:
            raise BrokerPublishError(f"Broker unavailable, cannot write to {topic}")

        partition = self.partition_for(topic, key)
        log = self._topics[topic][partition]
        record = BrokerRecord(
            topic=topic,
            partition=partition,
            offset=len(log),
            key=key,
            value=value,
        )
        log.append(record)
        # Let waiting consumers run
        await asyncio.sleep(0)
        return RecordMetadata(topic=topic, partition=partition, offset=record.offset)

    async def fetch(
        self, topic: str, partition: int, group_id: str, max_records: int = 100
    ) -> list[BrokerRecord]:
        self.create_topic(topic)
        offset = self.committed(group_id, topic, partition)
        return self._topics[topic][partition][offset : offset + max_records]

    async def commit(self, group_id: str, record: BrokerRecord) -> None:
        self._committed[(group_id, record.topic, record.partition)] = int(record.offset) + 1

    def committed(self, group_id: str, topic: str, partition: int) -> int:
        """Next offset the group will read."""
        return self._committed[(group_id, topic, partition)]

    async def lag(self, group_id: str, topic: str) -> int:
        self.create_topic(topic)
        return sum(
            len(log) - self.committed(group_id, topic, partition)
            for partition, log in enumerate(self._topics[topic])
        )

    async def ping(self) -> None:
        if not self.available:
            raise BrokerPublishError("Broker unavailable")

    def records(self, topic: str) -> list[BrokerRecord]:
        """All records of a topic across partitions (inspection and tests)."""
        self.create_topic(topic)
        return [record for log in self._topics[topic] for record in log]


# Global broker instance
_broker: MessageBroker | None = None


def create_broker() -> MessageBroker:
    """Build the broker selected by ``settings.broker_backend``."""
    if settings.broker_backend == "memory":
        broker = InMemoryBroker(default_partitions=settings.broker_partitions)
        for topic in ALL_TOPICS:
            broker.create_topic(topic)
        return broker

    from bookstore.infrastructure.redis_broker import RedisStreamBroker

    return RedisStreamBroker.from_url(
        settings.redis_url,
        default_partitions=settings.broker_partitions,
        stream_prefix=settings.redis_stream_prefix,
        max_len=settings.redis_stream_max_len,
    )


def get_broker() -> MessageBroker:
    """Get broker singleton."""
    global _broker
    if _broker is None:
        _broker = create_broker()
        logger.info(
            "Broker configured",
            backend=settings.broker_backend,
            partitions=settings.broker_partitions,
        )
    return _broker


def reset_broker() -> None:
    """Reset broker (for testing)."""
    global _broker
    _broker = None
