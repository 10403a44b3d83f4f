"""Content status persistence: the only business-record field the pipeline owns."""
from typing import Optional

import redis.asyncio as redis

STATUS_HASH = "content:status"


class RedisStatusStore:
    """StatusStore backed by one Redis hash (content_id -> status). Writes are plain overwrites, so repeating a transition on redelivery is harmless."""

    def __init__(self, client: redis.Redis, key: str = STATUS_HASH):
        self._client = client
        self.key = key

    async def set_status(self, content_id: str, status: str) -> None:
        await self._client.hset(self.key, content_id, status)

    async def get_status(self, content_id: str) -> Optional[str]:
        return await self._client.hget(self.key, content_id)
