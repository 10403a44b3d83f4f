"""
Real-time gateway side of the status fan-out.

StatusBridge subscribes once to the status channels and hands every
StatusEvent to the single live connection registered under its correlation
key. No queuing, no retry: an event for a key with no open connection is
dropped.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import redis.asyncio as redis
from redis.exceptions import RedisError
from starlette.websockets import WebSocket, WebSocketState

from contentflow.models.events import StatusEvent

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send(self, event: Dict[str, Any]) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class WebSocketConnection:
    """Connection over a Starlette/FastAPI WebSocket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, event: Dict[str, Any]) -> None:
        if self.websocket.client_state != WebSocketState.CONNECTED:
            raise ConnectionError("websocket is not connected")
        await self.websocket.send_json(event)

    async def close(self, code: int = 1000) -> None:
        if self.websocket.client_state == WebSocketState.CONNECTED:
            await self.websocket.close(code=code)


class ConnectionRegistry:
    """correlation key -> one live connection. All access goes through one asyncio.Lock because connect/disconnect handlers and the subscriber touch it independently.
    Why available: Lets the bridge route a job result to exactly the client waiting for it."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    async def register(self, key: str, connection: Connection) -> Optional[Connection]:
        """Register connection under key; returns the connection it replaced, if any."""
        async with self._lock:
            previous = self._connections.get(key)
            self._connections[key] = connection
        logger.info("connection_registered", extra={"correlation_id": key, "replaced": previous is not None})
        return previous

    async def unregister(self, key: str, connection: Optional[Connection] = None) -> bool:
        """Remove key. When connection is given, only remove it if key still maps to that same connection (a newer one is kept)."""
        async with self._lock:
            current = self._connections.get(key)
            if current is None or (connection is not None and current is not connection):
                return False
            del self._connections[key]
        logger.info("connection_unregistered", extra={"correlation_id": key})
        return True

    async def lookup(self, key: str) -> Optional[Connection]:
        async with self._lock:
            return self._connections.get(key)

    def __len__(self) -> int:
        return len(self._connections)


class StatusBridge:
    def __init__(
        self,
        client: redis.Redis,
        registry: ConnectionRegistry,
        channels: Sequence[str],
        resubscribe_delay: float = 1.0,
    ):
        self._client = client
        self.registry = registry
        self.channels: List[str] = list(channels)
        self.resubscribe_delay = resubscribe_delay
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.delivered = 0
        self.dropped = 0
        self.resubscriptions = 0

    async def start(self) -> None:
        """Subscribe to every status channel (once, for the process lifetime) in a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._listen())
        logger.info("status_bridge_started", extra={"channels": self.channels})

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("status_bridge_stopped", extra={"delivered": self.delivered, "dropped": self.dropped})

    async def _listen(self) -> None:
        while self._running:
            pubsub = self._client.pubsub()
            try:
                await pubsub.subscribe(*self.channels)
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    await self.handle_message(message["data"])
            except RedisError as e:
                logger.error("status_subscription_lost", extra={"error": str(e), "error_type": type(e).__name__})
            except Exception:
                logger.exception("status_subscription_crashed")
            finally:
                try:
                    await pubsub.unsubscribe()
                    await pubsub.aclose()
                except Exception as e:
                    logger.debug("status_unsubscribe_failed", extra={"error": str(e)})
            self.resubscriptions += 1
            await asyncio.sleep(self.resubscribe_delay)

    async def handle_message(self, raw: Any) -> bool:
        """Parse one pub/sub payload and deliver it. Malformed payloads are logged and skipped."""
        try:
            event = StatusEvent.from_json(raw)
        except (ValueError, TypeError) as e:
            logger.warning("status_event_malformed", extra={"error": str(e), "payload_preview": str(raw)[:120]})
            return False
        return await self.deliver(event)

    async def deliver(self, event: StatusEvent) -> bool:
        """Send event to the connection registered under its correlation key. Returns False (never raises) when there is no live connection or sending fails; a failing connection is unregistered."""
        key = event.correlation_id
        connection = await self.registry.lookup(key)
        if connection is None:
            self.dropped += 1
            logger.debug("status_event_dropped", extra={"correlation_id": key, "status": event.status})
            return False

        try:
            await connection.send(event.model_dump(by_alias=True, exclude_none=True))
        except Exception as e:
            self.dropped += 1
            logger.warning("status_event_send_failed", extra={"correlation_id": key, "error": str(e)})
            await self.registry.unregister(key, connection)
            return False

        self.delivered += 1
        logger.info("status_event_delivered", extra={"correlation_id": key, "status": event.status})
        return True
