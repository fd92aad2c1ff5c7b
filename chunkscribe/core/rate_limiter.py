"""
Fixed-window request rate limiting for calls to the external service.

A RateLimiter is built once per process and shared by every caller. The
global bucket uses GLOBAL_RATE_KEY; per-caller limiting passes a client
identifier instead and gets an independent counter.
"""

import time
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from chunkscribe.core.constants import (
    GLOBAL_RATE_KEY, RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SEC,
    RATE_LIMIT_CLEANUP_INTERVAL_SEC,
)

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float                  # epoch seconds

    @property
    def reset_at_iso(self) -> str:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat()

    def as_dict(self) -> dict:
        return {'remaining': self.remaining, 'resetAt': self.reset_at_iso}


@dataclass
class _Window:
    count: int
    reset_time: float


class RateLimiter:
    """Thread-safe fixed-window counter, keyed by identifier."""

    def __init__(self, max_requests: int = RATE_LIMIT_MAX_REQUESTS,
                 window_sec: float = RATE_LIMIT_WINDOW_SEC,
                 clock: Callable[[], float] = time.time,
                 cleanup_interval_sec: float = RATE_LIMIT_CLEANUP_INTERVAL_SEC):
        self.max_requests = max_requests
        self.window_sec = window_sec
        self._clock = clock
        self._cleanup_interval_sec = cleanup_interval_sec
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def check(self, identifier: str = GLOBAL_RATE_KEY,
              max_requests: int | None = None,
              window_sec: float | None = None) -> RateLimitResult:
        """Count one request against identifier's window if capacity remains."""
        max_requests = self.max_requests if max_requests is None else max_requests
        window_sec = self.window_sec if window_sec is None else window_sec

        with self._lock:
            now = self._clock()
            self._evict_expired(now)

            window = self._windows.get(identifier)
            if window is None or now >= window.reset_time:
                window = _Window(count=0, reset_time=now + window_sec)
                self._windows[identifier] = window

            if window.count >= max_requests:
                logger.info("Rate limit reached for %s until %.0f", identifier, window.reset_time)
                return RateLimitResult(allowed=False, remaining=0, reset_at=window.reset_time)

            window.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=max_requests - window.count,
                reset_at=window.reset_time,
            )

    def _evict_expired(self, now: float):
        # caller holds the lock
        if now - self._last_cleanup < self._cleanup_interval_sec:
            return
        self._last_cleanup = now
        expired = [key for key, w in self._windows.items() if w.reset_time <= now]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Evicted %d expired rate windows", len(expired))

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._windows)


def client_identifier(remote_addr: str | None = None,
                      forwarded_for: str | list[str] | None = None) -> str:
    """Pick the key used for per-caller limiting from request origin data."""
    if remote_addr:
        return remote_addr
    if forwarded_for:
        if isinstance(forwarded_for, (list, tuple)):
            forwarded_for = forwarded_for[0] if forwarded_for else ''
        first_hop = forwarded_for.split(',')[0].strip()
        if first_hop:
            return first_hop
    return 'unknown'
