"""Job queue and consumer tests: at-most-one in flight, ack on every outcome, redelivery of unacked messages."""
import asyncio
import json

import pytest

from contentflow.models.jobs import SearchJob, SearchPayload
from contentflow.queue.broker import RedisJobQueue
from contentflow.queue.consumer import JobConsumer


class RecordingHandler:
    def __init__(self, error=None):
        self.bodies = []
        self.error = error

    async def handle(self, body):
        self.bodies.append(body)
        if self.error:
            raise self.error


def _job(n):
    return SearchJob(payload=SearchPayload(query=f"q{n}", search_id=f"s{n}"))


@pytest.mark.asyncio
async def test_queue_is_fifo_and_tracks_in_flight(fake_redis):
    queue = RedisJobQueue(fake_redis, "search_queue")
    for n in range(3):
        await queue.enqueue(_job(n))
    assert await queue.depth() == 3

    first = await queue.receive(timeout=0.1)
    assert '"s0"' in first.body
    assert fake_redis.lists["search_queue:processing"] == [first.raw]

    await queue.ack(first)
    assert fake_redis.lists["search_queue:processing"] == []
    assert await queue.depth() == 2


@pytest.mark.asyncio
async def test_empty_queue_receive_returns_none(fake_redis):
    assert await RedisJobQueue(fake_redis, "q").receive(timeout=0.1) is None


@pytest.mark.asyncio
async def test_unacked_messages_are_requeued_first(fake_redis):
    queue = RedisJobQueue(fake_redis, "q")
    await queue.enqueue(_job(0))
    await queue.enqueue(_job(1))
    lost = await queue.receive()

    assert await queue.requeue_unacked() == 1
    again = await queue.receive()
    assert again.body == lost.body


@pytest.mark.asyncio
async def test_consumer_acks_success_and_failure(fake_redis):
    queue = RedisJobQueue(fake_redis, "q")
    await queue.enqueue(_job(0))
    handler = RecordingHandler(error=RuntimeError("handler bug"))
    consumer = JobConsumer(queue, handler, name="test")

    delivery = await queue.receive()
    await consumer.process(delivery)

    assert handler.bodies == [delivery.body]
    assert fake_redis.lists["q:processing"] == []
    assert consumer.processed == 1


class StopAfter:
    """Handler that stops the consumer after n messages."""

    def __init__(self, n):
        self.n = n
        self.consumer = None
        self.bodies = []

    async def handle(self, body):
        self.bodies.append(body)
        if len(self.bodies) >= self.n:
            self.consumer.stop()


@pytest.mark.asyncio
async def test_consumer_run_processes_sequentially_until_stopped(fake_redis):
    queue = RedisJobQueue(fake_redis, "q")
    for n in range(3):
        await queue.enqueue(_job(n))
    handler = StopAfter(2)
    consumer = JobConsumer(queue, handler, name="test", poll_timeout=0.01)
    handler.consumer = consumer

    await consumer.run()

    assert ['"s0"' in handler.bodies[0], '"s1"' in handler.bodies[1]] == [True, True]
    assert consumer.processed == 2
    assert await queue.depth() == 1
    assert fake_redis.lists["q:processing"] == []


NOT_UTF8 = b'{"jobId":"j9","kind":"SEARCH","payload":{"query":"\xff\xfe","searchId":"s9"}}'


@pytest.mark.asyncio
async def test_undecodable_message_is_received_and_acked(fake_redis):
    queue = RedisJobQueue(fake_redis, "q")
    await fake_redis.lpush("q", NOT_UTF8)

    delivery = await queue.receive()
    assert delivery.raw == NOT_UTF8
    assert "�" in delivery.body
    assert json.loads(delivery.body)["payload"]["searchId"] == "s9"

    await queue.ack(delivery)
    assert fake_redis.lists["q:processing"] == []


@pytest.mark.asyncio
async def test_consumer_survives_undecodable_and_invalid_messages(fake_redis):
    queue = RedisJobQueue(fake_redis, "q")
    await fake_redis.lpush("q", b"\xff not json at all")
    await fake_redis.lpush("q", NOT_UTF8)
    await queue.enqueue(_job(0))
    handler = StopAfter(3)
    consumer = JobConsumer(queue, handler, name="test", poll_timeout=0.01)
    handler.consumer = consumer

    await consumer.run()

    assert len(handler.bodies) == 3
    assert consumer.processed == 3
    assert fake_redis.lists["q"] == []
    assert fake_redis.lists["q:processing"] == []


class IdleQueue:
    name = "idle"

    async def requeue_unacked(self):
        return 0

    async def receive(self, timeout=5.0):
        await asyncio.sleep(0.01)
        return None


class BrokenQueue(IdleQueue):
    name = "broken"

    async def receive(self, timeout=5.0):
        await asyncio.sleep(0.01)
        raise ValueError("cannot decode reply")


@pytest.mark.asyncio
async def test_crashed_consumer_stops_its_siblings():
    from contentflow.run_workers import run_consumers

    idle = JobConsumer(IdleQueue(), RecordingHandler(), name="idle", poll_timeout=0.01)
    broken = JobConsumer(BrokenQueue(), RecordingHandler(), name="broken", poll_timeout=0.01)

    with pytest.raises(ValueError, match="cannot decode reply"):
        await asyncio.wait_for(run_consumers([idle, broken]), timeout=5)

    assert idle._running is False
