"""Global fixed-window rate limiting for outbound model calls.

One window for the whole process (not per user, not per model). The first
admission after expiry opens a new window with count=1; later admissions
increment the count until the window is full, after which checks are denied
without touching state until the window expires.

Thread safety: an asyncio.Lock makes check-and-increment atomic within a
single event loop. For multiple processes swap in a Redis INCR + PEXPIRE
implementation behind the same interface.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

log = structlog.get_logger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class _Window:
    count: int
    reset_at_ms: float


@dataclass(frozen=True)
class RateLimitStatus:
    current_count: int
    max_requests: int
    time_until_reset_ms: int
    is_limited: bool

    def to_dict(self) -> dict[str, int | bool]:
        return {
            "currentCount": self.current_count,
            "maxRequests": self.max_requests,
            "timeUntilReset": self.time_until_reset_ms,
            "isLimited": self.is_limited,
        }


class RateLimiter:
    """In-process global fixed-window limiter.

    One instance is shared by the application (built in the lifespan and
    stored on app.state).
    """

    def __init__(
        self,
        max_requests: int = 20,
        window_ms: int = 60_000,
        *,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be positive")
        if window_ms < 1:
            raise ValueError("window_ms must be positive")
        self._max_requests = max_requests
        self._window_ms = window_ms
        self._clock = clock
        self._window: _Window | None = None
        self._lock = asyncio.Lock()

    @property
    def max_requests(self) -> int:
        return self._max_requests

    def _active_window(self, now: float) -> _Window | None:
        window = self._window
        if window is None or now > window.reset_at_ms:
            return None
        return window

    async def can_make_request(self) -> bool:
        """Check admission and consume a slot when allowed."""
        async with self._lock:
            now = self._clock()
            window = self._active_window(now)

            if window is None:
                self._window = _Window(count=1, reset_at_ms=now + self._window_ms)
                log.debug("rate_limiter.window_opened", window_ms=self._window_ms)
                return True

            if window.count >= self._max_requests:
                log.warning(
                    "rate_limiter.denied",
                    count=window.count,
                    limit=self._max_requests,
                    reset_in_ms=int(window.reset_at_ms - now),
                )
                return False

            window.count += 1
            return True

    def would_admit(self) -> bool:
        """Read-only peek: would can_make_request() admit right now?"""
        window = self._active_window(self._clock())
        return window is None or window.count < self._max_requests

    def current_count(self) -> int:
        window = self._active_window(self._clock())
        return window.count if window else 0

    def time_until_reset_ms(self) -> int:
        now = self._clock()
        window = self._active_window(now)
        if window is None:
            return 0
        return max(0, int(window.reset_at_ms - now))

    def status(self) -> RateLimitStatus:
        """Diagnostic snapshot. Does not consume a slot."""
        return RateLimitStatus(
            current_count=self.current_count(),
            max_requests=self._max_requests,
            time_until_reset_ms=self.time_until_reset_ms(),
            is_limited=not self.would_admit(),
        )

    async def wait_for_reset(self) -> None:
        """Sleep until the current window expires (no-op if none is active)."""
        wait_ms = self.time_until_reset_ms()
        if wait_ms > 0:
            log.info("rate_limiter.waiting_for_reset", wait_ms=wait_ms)
            await asyncio.sleep(wait_ms / 1000.0)

    def reset(self) -> None:
        """Drop the current window (useful in tests)."""
        self._window = None
