"""
Durable job queue on Redis lists with manual acknowledgment.

receive() atomically moves one message from `<name>` to `<name>:processing`
(BLMOVE), so at most one message per consumer is in flight; ack() removes it
from the processing list. Anything still in the processing list when a
consumer starts was never acknowledged and is moved back for redelivery.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

import redis.asyncio as redis

from contentflow.models.jobs import ContentEmbedJob, SearchJob

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    """One received message. body is the decoded JSON text handed to the handler; raw is the value exactly as stored (needed to ack it)."""

    queue: str
    body: str
    raw: Union[bytes, str]


class RedisJobQueue:
    def __init__(self, client: redis.Redis, name: str):
        self._client = client
        self.name = name
        self.processing_name = f"{name}:processing"

    async def enqueue(self, job: Union[ContentEmbedJob, SearchJob]) -> None:
        await self._client.lpush(self.name, job.to_message().decode("utf-8"))
        logger.info("job_enqueued", extra={"queue": self.name, "job_id": job.id, "kind": job.kind.value})

    async def receive(self, timeout: float = 5.0) -> Optional[Delivery]:
        """Block up to timeout seconds for the oldest message; None on timeout."""
        raw = await self._client.blmove(self.name, self.processing_name, timeout, "RIGHT", "LEFT")
        if raw is None:
            return None
        if isinstance(raw, bytes):
            # Undecodable bytes become U+FFFD; the handler validates the payload and the entry is still acked.
            body = raw.decode("utf-8", errors="replace")
        else:
            body = raw
        return Delivery(queue=self.name, body=body, raw=raw)

    async def ack(self, delivery: Delivery) -> None:
        await self._client.lrem(self.processing_name, 1, delivery.raw)

    async def requeue_unacked(self) -> int:
        """Move messages left in the processing list back to the consuming end of the queue, oldest first. Returns how many were moved."""
        moved = 0
        while await self._client.lmove(self.processing_name, self.name, "LEFT", "RIGHT") is not None:
            moved += 1
        if moved:
            logger.warning("unacked_jobs_requeued", extra={"queue": self.name, "count": moved})
        return moved

    async def depth(self) -> int:
        return await self._client.llen(self.name)
