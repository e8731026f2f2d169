"""
Fixed-window rate limiting for report submissions.

Each client (keyed by IP, honouring X-Forwarded-For) may make RATE_LIMIT_MAX
requests per RATE_LIMIT_WINDOW_SECONDS window. Counters live in process
memory; with several workers each one enforces its own window.
"""

import logging
import math
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 60
DEFAULT_MAX_REQUESTS = 10


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: float


class FixedWindowRateLimiter:

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (window_start, count)
        self._windows: Dict[str, tuple[float, int]] = {}

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for key and say whether it is allowed."""
        now = self._clock()
        with self._lock:
            window_start, count = self._windows.get(key, (now, 0))
            if now - window_start >= self.window_seconds:
                window_start, count = now, 0

            count += 1
            self._windows[key] = (window_start, count)

            # Drop expired windows so the table doesn't grow with every client ever seen
            if len(self._windows) > 10_000:
                self._windows = {
                    k: v for k, v in self._windows.items()
                    if now - v[0] < self.window_seconds
                }

        return RateLimitDecision(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            retry_after=max(0.0, window_start + self.window_seconds - now),
        )


def client_identifier(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


_limiter_lock = threading.Lock()
_report_limiter: Optional[FixedWindowRateLimiter] = None


def get_report_rate_limiter() -> FixedWindowRateLimiter:
    """Shared limiter for POST /api/report, configured from the environment on first use."""
    global _report_limiter

    with _limiter_lock:
        if _report_limiter is None:
            _report_limiter = FixedWindowRateLimiter(
                limit=int(os.getenv("RATE_LIMIT_MAX") or DEFAULT_MAX_REQUESTS),
                window_seconds=float(os.getenv("RATE_LIMIT_WINDOW_SECONDS") or DEFAULT_WINDOW_SECONDS),
            )
    return _report_limiter


def report_rate_limit(request: Request) -> None:
    """FastAPI dependency: reject the request with 429 once the client's window is used up."""
    limiter = get_report_rate_limiter()
    client_id = client_identifier(request)
    decision = limiter.hit(client_id)

    if not decision.allowed:
        logger.warning(f"Rate limit exceeded for {client_id}")
        raise HTTPException(
            status_code=429,
            detail="Too many report requests. Please try again in a minute.",
            headers={
                "X-RateLimit-Limit": str(decision.limit),
                "X-RateLimit-Remaining": "0",
                "Retry-After": str(max(1, math.ceil(decision.retry_after))),
            },
        )
