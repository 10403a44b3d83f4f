import logging

from fastapi import HTTPException

from contentflow.core.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)


def as_http_500(e: Exception) -> HTTPException:
    """Log exception and return a generic HTTPException (no internal details leaked). An unreachable broker becomes 503 so clients know to retry.
    Why available: Centralized error handling so API never leaks stack traces or internal state to clients."""
    if isinstance(e, UpstreamUnavailableError):
        logger.error("api_upstream_unavailable", extra={"error": str(e)})
        return HTTPException(status_code=503, detail="Service temporarily unavailable")
    logger.error("api_unhandled_error", exc_info=e)
    return HTTPException(status_code=500, detail="Internal server error")
