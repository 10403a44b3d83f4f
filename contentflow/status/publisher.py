import logging

import redis.asyncio as redis

from contentflow.models.events import StatusEvent

logger = logging.getLogger(__name__)


class StatusPublisher:
    """Publishes StatusEvents on Redis pub/sub channels."""

    def __init__(self, client: redis.Redis):
        self._client = client

    async def publish(self, channel: str, event: StatusEvent) -> bool:
        """Publish one event. A broker failure is logged and reported as False, never raised: it must not fail a job that already reached its terminal status.
        Why available: Workers call this exactly once per terminal transition; the gateway's StatusBridge routes it to the waiting client."""
        try:
            receivers = await self._client.publish(channel, event.to_json())
        except Exception as e:
            logger.error(
                "status_publish_failed",
                extra={"channel": channel, "correlation_id": event.correlation_id, "error": str(e)},
            )
            return False
        logger.info(
            "status_published",
            extra={
                "channel": channel,
                "correlation_id": event.correlation_id,
                "status": event.status,
                "receivers": receivers,
            },
        )
        return True
