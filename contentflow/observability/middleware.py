import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Tags every HTTP request with x-request-id (client-supplied or new) and logs one http_request line with latency. WebSocket traffic is not seen here."""

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = rid
        start = time.perf_counter()

        response = await call_next(request)

        logger.info(
            "http_request",
            extra={
                "request_id": rid,
                "path": request.url.path,
                "method": request.method,
                "status": response.status_code,
                "latency_ms": round((time.perf_counter() - start) * 1000.0, 2),
            },
        )
        response.headers["x-request-id"] = rid
        return response
