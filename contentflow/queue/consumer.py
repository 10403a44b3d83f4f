import asyncio
import logging
from typing import Protocol

from redis.exceptions import RedisError

from .broker import Delivery, RedisJobQueue

logger = logging.getLogger(__name__)


class JobHandler(Protocol):
    async def handle(self, body: str) -> None: ...


class JobConsumer:
    """Receive loop for one queue: one message in flight, processed to completion, then acknowledged whatever the outcome.
    Why available: One consumer task per queue keeps same-kind jobs strictly sequential (provider rate limits) while different queues run concurrently."""

    def __init__(
        self,
        queue: RedisJobQueue,
        handler: JobHandler,
        *,
        name: str,
        poll_timeout: float = 5.0,
        reconnect_delay: float = 5.0,
    ):
        self.queue = queue
        self.handler = handler
        self.name = name
        self.poll_timeout = poll_timeout
        self.reconnect_delay = reconnect_delay
        self._running = False
        self.processed = 0

    def stop(self) -> None:
        """Ask the loop to exit after the in-flight job (if any) finishes. There is no mid-job cancellation."""
        self._running = False

    async def run(self) -> None:
        self._running = True
        await self.queue.requeue_unacked()
        logger.info("consumer_started", extra={"consumer": self.name, "queue": self.queue.name})

        while self._running:
            try:
                delivery = await self.queue.receive(timeout=self.poll_timeout)
            except RedisError as e:
                logger.error("queue_receive_failed", extra={"consumer": self.name, "error": str(e)})
                await asyncio.sleep(self.reconnect_delay)
                continue
            if delivery is None:
                continue
            await self.process(delivery)

        logger.info("consumer_stopped", extra={"consumer": self.name, "processed": self.processed})

    async def process(self, delivery: Delivery) -> None:
        """Run the handler on one delivery and always acknowledge it. Handlers report job failures themselves; anything that escapes is logged here so the message is not redelivered forever."""
        try:
            await self.handler.handle(delivery.body)
        except Exception:
            logger.exception("job_handler_crashed", extra={"consumer": self.name})
        finally:
            self.processed += 1
            await self._ack(delivery)

    async def _ack(self, delivery: Delivery) -> bool:
        try:
            await self.queue.ack(delivery)
            return True
        except RedisError as e:
            # Unacked: redelivered by requeue_unacked() on the next start.
            logger.error("queue_ack_failed", extra={"consumer": self.name, "error": str(e)})
            return False
