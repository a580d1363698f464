"""Tests for the Redis Streams broker adapter."""

from collections import defaultdict

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from bookstore.domain.exceptions import BrokerPublishError
from bookstore.infrastructure.broker import partition_for_key
from bookstore.infrastructure.consumer import PartitionedConsumer
from bookstore.infrastructure.redis_broker import RedisStreamBroker

TOPIC = "orders.events"


def _sequence(entry_id: bytes | str) -> tuple[int, int]:
    text = entry_id.decode() if isinstance(entry_id, bytes) else entry_id
    millis, seq = text.split("-")
    return int(millis), int(seq)


class StreamClient:
    """Records the stream and hash commands the adapter sends to Redis.

    Replies use the shapes ``redis.asyncio.Redis`` returns without
    ``decode_responses``: bytes ids, bytes field names and values.
    """

    def __init__(self) -> None:
        self.streams: dict[str, list[tuple[bytes, dict[bytes, bytes]]]] = defaultdict(list)
        self.hashes: dict[str, dict[bytes, bytes]] = defaultdict(dict)
        self.xadd_options: list[dict] = []
        self.down = False
        self.closed = False
        self._seq = 0

    async def xadd(self, name, fields, maxlen=None, approximate=True):
        if self.down:
            raise RedisConnectionError("Connection refused")
        self._seq += 1
        entry_id = f"1700000000000-{self._seq}".encode()
        encoded = {
            field.encode(): value if isinstance(value, bytes) else value.encode()
            for field, value in fields.items()
        }
        self.streams[name].append((entry_id, encoded))
        self.xadd_options.append({"name": name, "maxlen": maxlen, "approximate": approximate})
        return entry_id

    async def xrange(self, name, min="-", max="+", count=None):
        entries = list(self.streams.get(name, []))
        if min.startswith("("):
            after = _sequence(min[1:])
            entries = [entry for entry in entries if _sequence(entry[0]) > after]
        return entries[:count] if count else entries

    async def xlen(self, name):
        return len(self.streams.get(name, []))

    async def hget(self, name, key):
        return self.hashes[name].get(key.encode())

    async def hset(self, name, key, value):
        self.hashes[name][key.encode()] = value.encode()
        return 1

    async def ping(self):
        if self.down:
            raise RedisConnectionError("Connection refused")
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def client() -> StreamClient:
    return StreamClient()


@pytest.fixture
def broker(client: StreamClient) -> RedisStreamBroker:
    return RedisStreamBroker(client, default_partitions=3, stream_prefix="test:", max_len=1000)


class TestSend:
    """Tests for appending records."""

    async def test_record_goes_to_key_partition_stream(self, broker, client):
        metadata = await broker.send(TOPIC, "42", b'{"n": 1}')

        partition = partition_for_key("42", 3)
        assert metadata.partition == partition
        assert metadata.offset == "1700000000000-1"
        ((entry_id, fields),) = client.streams[f"test:{TOPIC}:{partition}"]
        assert fields == {b"value": b'{"n": 1}', b"key": b"42"}
        assert client.xadd_options[0]["maxlen"] == 1000

    async def test_unkeyed_records_spread_over_partitions(self, broker, client):
        for _ in range(3):
            await broker.send(TOPIC, None, b"{}")

        assert {len(client.streams[f"test:{TOPIC}:{p}"]) for p in range(3)} == {1}

    async def test_connection_error_raised_as_publish_error(self, broker, client):
        client.down = True

        with pytest.raises(BrokerPublishError):
            await broker.send(TOPIC, "42", b"{}")


class TestConsumerPositions:
    """Tests for fetch and committed positions."""

    async def test_fetch_starts_after_committed_entry(self, broker):
        for n in range(3):
            await broker.send(TOPIC, "42", str(n).encode())
        partition = partition_for_key("42", 3)

        first = await broker.fetch(TOPIC, partition, "group-a")
        await broker.commit("group-a", first[0])
        rest = await broker.fetch(TOPIC, partition, "group-a")

        assert [record.value for record in first] == [b"0", b"1", b"2"]
        assert [record.value for record in rest] == [b"1", b"2"]
        assert rest[0].key == "42"
        assert rest[0].timestamp.year == 2023

    async def test_groups_are_independent(self, broker):
        await broker.send(TOPIC, "42", b"x")
        partition = partition_for_key("42", 3)
        (record,) = await broker.fetch(TOPIC, partition, "group-a")

        await broker.commit("group-a", record)

        assert await broker.fetch(TOPIC, partition, "group-a") == []
        assert len(await broker.fetch(TOPIC, partition, "group-b")) == 1

    async def test_committed_position_survives_new_broker(self, broker, client):
        await broker.send(TOPIC, "42", b"x")
        await broker.send(TOPIC, "42", b"y")
        partition = partition_for_key("42", 3)
        first, _ = await broker.fetch(TOPIC, partition, "group-a")
        await broker.commit("group-a", first)

        restarted = RedisStreamBroker(client, default_partitions=3, stream_prefix="test:")

        (record,) = await restarted.fetch(TOPIC, partition, "group-a")
        assert record.value == b"y"

    async def test_lag_counts_uncommitted_entries(self, broker):
        await broker.send(TOPIC, "1", b"a")
        await broker.send(TOPIC, "1", b"b")
        await broker.send(TOPIC, "2", b"c")
        partition = partition_for_key("1", 3)
        first = (await broker.fetch(TOPIC, partition, "group-a"))[0]

        assert await broker.lag("group-a", TOPIC) == 3
        await broker.commit("group-a", first)
        assert await broker.lag("group-a", TOPIC) == 2


class TestConsumerOverStreams:
    """The worker pool runs unchanged on Redis Streams."""

    async def test_poll_handles_and_commits(self, broker):
        handled = []

        async def handler(record):
            handled.append(record.value)

        for n in range(4):
            await broker.send(TOPIC, "order-1", str(n).encode())
        consumer = PartitionedConsumer(
            broker=broker,
            topic=TOPIC,
            group_id="group-a",
            handler=handler,
            backoff_seconds=0,
        )

        assert await consumer.poll_once() == 4
        assert handled == [b"0", b"1", b"2", b"3"]
        assert await consumer.poll_once() == 0
        assert await broker.lag("group-a", TOPIC) == 0


async def test_ping_and_close(broker, client):
    await broker.ping()
    await broker.close()

    assert client.closed
    client.down = True
    with pytest.raises(RedisConnectionError):
        await broker.ping()
