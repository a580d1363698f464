"""Consumer-group worker pool over the message broker.

Each worker owns the partitions ``p`` with ``p % concurrency == index``
and processes them in offset order. An offset is committed only after
the handler succeeded, or after the record was parked on the dead-letter
topic once retries with exponential backoff ran out.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog

from bookstore.infrastructure.broker import DEAD_LETTER_TOPIC, BrokerRecord, MessageBroker

logger = structlog.get_logger()

RecordHandler = Callable[[BrokerRecord], Awaitable[None]]


class NonRetryableError(Exception):
    """Raised by handlers for records that can never succeed (bad payloads)."""

    pass


class PartitionedConsumer:
    """Runs a record handler over one topic for one consumer group."""

    def __init__(
        self,
        broker: MessageBroker,
        topic: str,
        group_id: str,
        handler: RecordHandler,
        concurrency: int = 3,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        dead_letter_topic: str = DEAD_LETTER_TOPIC,
        poll_interval: float = 0.05,
    ) -> None:
        """Initialize consumer.

        Args:
            broker: Broker to read from.
            topic: Topic to consume.
            group_id: Consumer group whose offsets are committed.
            handler: Coroutine called once per record.
            concurrency: Number of workers.
            max_attempts: Handler attempts before dead-lettering.
            backoff_seconds: Delay before the first retry, doubled each time.
            dead_letter_topic: Where unprocessable records go.
            poll_interval: Idle sleep between polls.
        """
        self.broker = broker
        self.topic = topic
        self.group_id = group_id
        self.handler = handler
        self.concurrency = max(1, concurrency)
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.dead_letter_topic = dead_letter_topic
        self.poll_interval = poll_interval
        self._tasks: list[asyncio.Task[None]] = []
        self._locks: dict[int, asyncio.Lock] = {}

    def assignments(self, worker_index: int) -> list[int]:
        """Partitions owned by a worker."""
        partitions = self.broker.partitions_for(self.topic)
        return [p for p in range(partitions) if p % self.concurrency == worker_index]

    async def poll_once(self) -> int:
        """Process every record currently available on all partitions.

        Returns:
            Number of records committed.
        """
        processed = 0
        for partition in range(self.broker.partitions_for(self.topic)):
            processed += await self._process_partition(partition)
        return processed

    async def _process_partition(self, partition: int) -> int:
        lock = self._locks.setdefault(partition, asyncio.Lock())
        processed = 0
        async with lock:
            while True:
                batch = await self.broker.fetch(self.topic, partition, self.group_id)
                if not batch:
                    return processed
                for record in batch:
                    if not await self._handle(record):
                        # Leave the offset where it is and try again next poll
                        return processed
                    await self.broker.commit(self.group_id, record)
                    processed += 1

    async def _handle(self, record: BrokerRecord) -> bool:
        """Run the handler with retries; True when the offset may be committed."""
        error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.handler(record)
                return True
            except NonRetryableError as e:
                error = e
                logger.warning(
                    "Unprocessable record",
                    topic=record.topic,
                    partition=record.partition,
                    offset=record.offset,
                    error=str(e),
                )
                break
            except Exception as e:
                error = e
                logger.warning(
                    "Record handler failed",
                    topic=record.topic,
                    partition=record.partition,
                    offset=record.offset,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt < self.max_attempts and self.backoff_seconds > 0:
                    await asyncio.sleep(self.backoff_seconds * (2 ** (attempt - 1)))

        return await self._dead_letter(record, error)

    async def _dead_letter(self, record: BrokerRecord, error: Exception | None) -> bool:
        envelope = {
            "source_topic": record.topic,
            "partition": record.partition,
            "offset": record.offset,
            "key": record.key,
            "value": record.value.decode("utf-8", errors="replace"),
            "consumer_group": self.group_id,
            "error": str(error) if error else None,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.broker.send(
                self.dead_letter_topic,
                record.key,
                json.dumps(envelope).encode("utf-8"),
            )
        except Exception as e:
            logger.error(
                "Dead-letter publish failed",
                topic=record.topic,
                offset=record.offset,
                error=str(e),
            )
            return False

        logger.error(
            "Record moved to dead-letter topic",
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            dead_letter_topic=self.dead_letter_topic,
        )
        return True

    async def _run_worker(self, worker_index: int) -> None:
        while True:
            for partition in self.assignments(worker_index):
                try:
                    await self._process_partition(partition)
                except Exception:
                    logger.exception(
                        "Consumer worker error",
                        topic=self.topic,
                        partition=partition,
                        worker=worker_index,
                    )
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        """Start one background task per worker."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._run_worker(index), name=f"{self.group_id}-{self.topic}-{index}")
            for index in range(self.concurrency)
        ]
        logger.info(
            "Consumer started",
            topic=self.topic,
            group_id=self.group_id,
            concurrency=self.concurrency,
        )

    async def stop(self) -> None:
        """Cancel workers and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Consumer stopped", topic=self.topic, group_id=self.group_id)

    @property
    def running(self) -> bool:
        return bool(self._tasks)
