import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect, status

from contentflow.core.config import settings
from contentflow.core.logging import configure_logging
from contentflow.core.redis_client import RedisConnectionManager
from contentflow.guardrails.errors import as_http_500
from contentflow.guardrails.rate_limit import SlidingWindowLimiter
from contentflow.ingest.jobs import JobStatus
from contentflow.models.jobs import ContentEmbedJob, ContentEmbedPayload, SearchJob, SearchPayload
from contentflow.models.schemas import (
    ContentAcceptedResponse,
    ContentStatusResponse,
    HealthResponse,
    SearchAcceptedResponse,
    SearchRequest,
)
from contentflow.observability.middleware import RequestTimingMiddleware
from contentflow.queue.broker import RedisJobQueue
from contentflow.status.gateway import ConnectionRegistry, StatusBridge, WebSocketConnection
from contentflow.status.store import RedisStatusStore

logger = logging.getLogger(__name__)

RATE_LIMIT_REQUESTS = 20
RATE_LIMIT_WINDOW_SECONDS = 60


def create_app(redis_manager: Optional[RedisConnectionManager] = None) -> FastAPI:
    """Build the gateway: submission routes that enqueue jobs, a status route, and the two WebSocket endpoints fed by the StatusBridge.
    Why available: The gateway is the producer side of both queues and the only place clients receive job outcomes."""
    manager = redis_manager or RedisConnectionManager(settings.redis_url)
    registry = ConnectionRegistry()
    rate_limiter = SlidingWindowLimiter(RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW_SECONDS)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = await manager.connect()
        bridge = StatusBridge(
            client,
            registry,
            [settings.content_status_channel, settings.search_status_channel],
        )
        app.state.content_queue = RedisJobQueue(client, settings.content_queue)
        app.state.search_queue = RedisJobQueue(client, settings.search_queue)
        app.state.status_store = RedisStatusStore(client)
        app.state.bridge = bridge
        await bridge.start()
        try:
            yield
        finally:
            await bridge.stop()
            await manager.close()

    app = FastAPI(title="ContentFlow Gateway", lifespan=lifespan)
    app.add_middleware(RequestTimingMiddleware)
    app.state.registry = registry

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Returns 200 OK with broker connectivity and live connection count.
        Why available: Standard endpoint for uptime checks and orchestration."""
        return HealthResponse(status="ok", redis=manager.connected, connections=len(registry))

    @app.post("/content", status_code=status.HTTP_202_ACCEPTED, response_model=ContentAcceptedResponse)
    async def submit_content(payload: ContentEmbedPayload, request: Request):
        """Marks the content PROCESSING and enqueues a CONTENT_EMBED job. The outcome is pushed to /ws/content for payload.owner_id.
        Why available: Producer side of the content pipeline; returns before any provider call is made."""
        rate_limiter.check(request)
        job = ContentEmbedJob(payload=payload)
        try:
            await request.app.state.status_store.set_status(payload.content_id, JobStatus.PROCESSING.value)
            await request.app.state.content_queue.enqueue(job)
        except Exception as e:
            raise as_http_500(e)
        return ContentAcceptedResponse(job_id=job.id, content_id=payload.content_id)

    @app.get("/content/{content_id}/status", response_model=ContentStatusResponse)
    async def content_status(content_id: str, request: Request):
        try:
            value = await request.app.state.status_store.get_status(content_id)
        except Exception as e:
            raise as_http_500(e)
        if value is None:
            raise HTTPException(status_code=404, detail="Content not found")
        return ContentStatusResponse(content_id=content_id, status=value)

    @app.post("/search", status_code=status.HTTP_202_ACCEPTED, response_model=SearchAcceptedResponse)
    async def submit_search(req: SearchRequest, request: Request):
        """Enqueues a SEARCH job; the answer is pushed to /ws/search for the returned search_id."""
        rate_limiter.check(request)
        search_id = req.search_id or str(uuid.uuid4())
        try:
            payload = SearchPayload(query=req.query, search_id=search_id)
        except ValueError:
            raise HTTPException(status_code=422, detail="query must not be empty")
        job = SearchJob(payload=payload)
        try:
            await request.app.state.search_queue.enqueue(job)
        except Exception as e:
            raise as_http_500(e)
        return SearchAcceptedResponse(job_id=job.id, search_id=search_id)

    @app.websocket("/ws/content")
    async def content_updates(websocket: WebSocket):
        key = websocket.query_params.get("userId") or websocket.headers.get("x-user-id")
        await _serve_connection(websocket, registry, key)

    @app.websocket("/ws/search")
    async def search_updates(websocket: WebSocket):
        await _serve_connection(websocket, registry, websocket.query_params.get("searchId"))

    return app


async def _serve_connection(websocket: WebSocket, registry: ConnectionRegistry, key: Optional[str]) -> None:
    """Hold one client connection registered under key until it disconnects. Inbound messages are ignored."""
    await websocket.accept()
    if not key:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    connection = WebSocketConnection(websocket)
    previous = await registry.register(key, connection)
    if previous is not None:
        try:
            await previous.close()
        except RuntimeError as e:
            logger.warning("replaced_connection_close_failed", extra={"correlation_id": key, "error": str(e)})
    try:
        while True:
            await websocket.receive_text()
    except (WebSocketDisconnect, RuntimeError):
        # RuntimeError: closed server-side after being replaced
        pass
    finally:
        await registry.unregister(key, connection)


configure_logging(settings.log_level)
app = create_app()
