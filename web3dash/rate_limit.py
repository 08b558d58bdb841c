"""
In-memory fixed-window rate limiting for sensitive endpoints.
"""

import threading
import time
from typing import Callable, Tuple

from fastapi import HTTPException, Request


class RateLimiter:
    """Allow at most `max_requests` per key within each `window_seconds` window."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, Tuple[float, int]] = {}
        self._last_cleanup = clock()
        self._lock = threading.Lock()

    def hit(self, key: str) -> Tuple[bool, int]:
        """
        Register a request for key.

        Returns:
            (allowed, retry_after_seconds)
        """
        now = self._clock()
        with self._lock:
            if now - self._last_cleanup >= self.window_seconds:
                self._cleanup(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0

            if count >= self.max_requests:
                retry_after = int(self.window_seconds - (now - started)) + 1
                return False, retry_after

            self._windows[key] = (started, count + 1)
            return True, 0

    def _cleanup(self, now: float):
        """Drop keys whose window has ended. Caller holds the lock."""
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._last_cleanup = now

    def reset(self):
        with self._lock:
            self._windows.clear()


def rate_limited(limiter: RateLimiter):
    """Build a FastAPI dependency that applies limiter per client address."""

    def dependency(request: Request) -> None:
        client_host = request.client.host if request.client else "unknown"
        key = f"{request.url.path}:{client_host}"
        allowed, retry_after = limiter.hit(key)
        if not allowed:
            raise HTTPException(
                status_code=429,
                detail="Too many requests, please try again later",
                headers={"Retry-After": str(retry_after)},
            )

    return dependency


# Shared limiters
auth_limiter = RateLimiter(max_requests=20, window_seconds=15 * 60)
