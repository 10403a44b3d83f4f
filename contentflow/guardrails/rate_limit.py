import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from fastapi import HTTPException
from starlette.requests import Request


class SlidingWindowLimiter:
    """Sliding-window limiter, in-memory (per gateway process), keyed by client IP. Applied to the submission routes only.
    Why available: Every accepted submission becomes provider calls against a shared quota; capping submissions per client protects that quota before anything is enqueued."""

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def allow(self, key: str) -> bool:
        """Record a hit for key and return True, or return False (recording nothing) if key is at the limit."""
        now = self.clock()
        hits = self._hits[key]
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def check(self, request: Request) -> None:
        """Raise 429 if the calling client is over the limit."""
        key = request.client.host if request.client else "unknown"
        if not self.allow(key):
            raise HTTPException(status_code=429, detail="Rate limit exceeded. Please retry later.")
