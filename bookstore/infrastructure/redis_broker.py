"""Redis Streams adapter for the message broker.

Every topic partition is one stream named ``<prefix><topic>:<partition>``.
A record is a stream entry with ``key`` and ``value`` fields and its
offset is the entry id. Committed positions live in one hash per
consumer group, so they survive restarts and are shared by every process
that consumes with the same group.
"""

from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from bookstore.domain.exceptions import BrokerPublishError
from bookstore.infrastructure.broker import BrokerRecord, MessageBroker, RecordMetadata

logger = structlog.get_logger()


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _entry_time(entry_id: str) -> datetime:
    """Stream entry ids start with the append time in milliseconds."""
    millis = int(entry_id.split("-", 1)[0])
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


class RedisStreamBroker(MessageBroker):
    """Partitioned log on Redis Streams.

    Example usage:
        broker = RedisStreamBroker.from_url("redis://localhost:6379/0")
        await broker.send("orders.events", "42", b"{}")
    """

    def __init__(
        self,
        client: redis.Redis,
        default_partitions: int = 3,
        stream_prefix: str = "bookstore:",
        max_len: int | None = None,
    ) -> None:
        """Initialize broker.

        Args:
            client: Async Redis client (bytes responses).
            default_partitions: Streams per topic.
            stream_prefix: Prefix of every stream and offset hash name.
            max_len: Approximate cap on entries kept per stream; None keeps all.
        """
        super().__init__(default_partitions)
        self.client = client
        self.stream_prefix = stream_prefix
        self.max_len = max_len or None

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisStreamBroker":
        return cls(redis.Redis.from_url(url), **kwargs)

    def stream_name(self, topic: str, partition: int) -> str:
        return f"{self.stream_prefix}{topic}:{partition}"

    def offsets_name(self, group_id: str) -> str:
        return f"{self.stream_prefix}offsets:{group_id}"

    async def send(self, topic: str, key: str | None, value: bytes) -> RecordMetadata:
        partition = self.partition_for(topic, key)
        fields: dict[str, bytes | str] = {"value": value}
        if key is not None:
            fields["key"] = key

        try:
            entry_id = await self.client.xadd(
                self.stream_name(topic, partition),
                fields,
                maxlen=self.max_len,
                approximate=True,
            )
        except RedisError as e:
            logger.warning("Stream append failed", topic=topic, partition=partition, error=str(e))
            raise BrokerPublishError(f"Cannot write to {topic}: {e}") from e

        return RecordMetadata(topic=topic, partition=partition, offset=_text(entry_id))

    async def _committed(self, group_id: str, topic: str, partition: int) -> str | None:
        value = await self.client.hget(self.offsets_name(group_id), f"{topic}:{partition}")
        return _text(value) if value is not None else None

    async def fetch(
        self, topic: str, partition: int, group_id: str, max_records: int = 100
    ) -> list[BrokerRecord]:
        last = await self._committed(group_id, topic, partition)
        entries = await self.client.xrange(
            self.stream_name(topic, partition),
            min=f"({last}" if last else "-",
            max="+",
            count=max_records,
        )
        records = []
        for raw_id, fields in entries:
            entry_id = _text(raw_id)
            key = fields.get(b"key")
            records.append(
                BrokerRecord(
                    topic=topic,
                    partition=partition,
                    offset=entry_id,
                    key=_text(key) if key is not None else None,
                    value=fields.get(b"value", b""),
                    timestamp=_entry_time(entry_id),
                )
            )
        return records

    async def commit(self, group_id: str, record: BrokerRecord) -> None:
        await self.client.hset(
            self.offsets_name(group_id),
            f"{record.topic}:{record.partition}",
            str(record.offset),
        )

    async def lag(self, group_id: str, topic: str) -> int:
        total = 0
        for partition in range(self.partitions_for(topic)):
            stream = self.stream_name(topic, partition)
            last = await self._committed(group_id, topic, partition)
            if last is None:
                total += await self.client.xlen(stream)
            else:
                total += len(await self.client.xrange(stream, min=f"({last}", max="+"))
        return total

    async def ping(self) -> None:
        await self.client.ping()

    async def close(self) -> None:
        await self.client.aclose()
