"""Owned Redis connections shared by the job queue, the status publisher, the status store and the gateway subscriber."""
import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from contentflow.core.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)


class RedisConnectionManager:
    """Connect/close lifecycle for the redis.asyncio clients. Components receive the manager (or its clients) explicitly; nothing reads a module-level handle.
    Why available: Broker and pub/sub handles are owned here so startup can retry the connection and shutdown can close it in one place.

    `client` decodes replies to str (status hash, pub/sub). `queue_client` returns raw bytes so a
    queued message that is not valid UTF-8 can still be received and acknowledged."""

    def __init__(self, url: str, max_attempts: int = 10, retry_delay: float = 5.0):
        self.url = url
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._client: Optional[redis.Redis] = None
        self._queue_client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise UpstreamUnavailableError("Redis is not connected")
        return self._client

    @property
    def queue_client(self) -> redis.Redis:
        if self._queue_client is None:
            raise UpstreamUnavailableError("Redis is not connected")
        return self._queue_client

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> redis.Redis:
        """Open the clients and ping, retrying up to max_attempts times with a fixed delay."""
        if self._client is not None:
            return self._client

        last_err: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            client = redis.from_url(self.url, encoding="utf-8", decode_responses=True)
            try:
                await client.ping()
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                last_err = e
                await client.aclose()
                logger.warning(
                    "redis_connect_retry",
                    extra={"attempt": attempt, "max_attempts": self.max_attempts, "delay_s": self.retry_delay},
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
                continue
            self._client = client
            self._queue_client = redis.from_url(self.url, decode_responses=False)
            logger.info("redis_connected", extra={"url": self.url})
            return client

        raise UpstreamUnavailableError(f"Unable to connect to Redis after {self.max_attempts} attempts: {last_err}")

    async def close(self) -> None:
        if self._queue_client is not None:
            await self._queue_client.aclose()
            self._queue_client = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("redis_closed")
