"""Client-side hourly rate limiting.

Tracks a rolling one-hour request budget per client instance. None of the
methods here suspend, so check-then-reserve is atomic under asyncio's
cooperative scheduling.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

from simplefact.client.errors import build_error
from simplefact.core.logging import get_logger
from simplefact.exceptions import ErrorCode

logger = get_logger(__name__)

WINDOW_SECONDS = 3600


@dataclass
class RateWindow:
    """Mutable state for the current rate window."""
    limit: int
    window_start: float = field(default_factory=time.time)
    requests_in_window: int = 0

    @property
    def reset_at(self) -> float:
        return self.window_start + WINDOW_SECONDS


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Read-only view of the rate window."""
    limit: int
    remaining: int
    reset_time: datetime
    requests_this_hour: int


class RateLimiter:
    """Rolling hourly request budget.

    Usage:
        limiter = RateLimiter(limit=1000)
        limiter.check_and_reserve()      # raises RATE_LIMIT_EXCEEDED when exhausted
        ...dispatch...
        limiter.record_completion()      # the reserved slot becomes a counted request
    """

    def __init__(self, limit: int = 1000, clock: Callable[[], float] = time.time):
        """Initialize rate limiter.

        Args:
            limit: Maximum requests per window
            clock: Time source returning epoch seconds
        """
        self._clock = clock
        self._window = RateWindow(limit=limit, window_start=clock())
        self._reserved = 0

    @property
    def limit(self) -> int:
        return self._window.limit

    def _roll_window(self) -> None:
        """Reset the window lazily once its hour has passed."""
        now = self._clock()
        if now > self._window.reset_at:
            self._window.requests_in_window = 0
            self._window.window_start = now
            logger.debug("Rate window reset")

    def _reset_time(self) -> datetime:
        return datetime.fromtimestamp(self._window.reset_at, tz=timezone.utc)

    def check_and_reserve(self) -> None:
        """Reserve a slot for one request.

        Raises:
            SimpleFactError: RATE_LIMIT_EXCEEDED when the window is exhausted
        """
        self._roll_window()
        used = self._window.requests_in_window + self._reserved
        if used >= self._window.limit:
            reset_time = self._reset_time().isoformat()
            logger.warning(
                f"Rate limit of {self._window.limit} requests/hour reached, resets at {reset_time}"
            )
            raise build_error(
                ErrorCode.RATE_LIMIT_EXCEEDED,
                "Rate limit exceeded. Please wait before making more requests.",
                status_code=429,
                details={"limit": self._window.limit, "reset_time": reset_time},
            )
        self._reserved += 1

    def release(self) -> None:
        """Drop a reservation whose request was never dispatched."""
        if self._reserved > 0:
            self._reserved -= 1

    def record_completion(self, reserved: bool = True) -> None:
        """Count a request that reached the network.

        Args:
            reserved: Whether the request held a reservation from
                check_and_reserve (backoff retries do not)
        """
        if reserved:
            self.release()
        self._window.requests_in_window += 1

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Apply server-provided x-ratelimit-* hints.

        The server is authoritative: when present these values replace the
        locally tracked limit, usage and reset time.
        """
        limit = _parse_int(headers.get("x-ratelimit-limit"))
        if limit is not None and limit > 0:
            self._window.limit = limit

        remaining = _parse_int(headers.get("x-ratelimit-remaining"))
        if remaining is not None:
            self._window.requests_in_window = max(0, self._window.limit - remaining)

        reset = _parse_int(headers.get("x-ratelimit-reset"))
        if reset is not None:
            self._window.window_start = reset - WINDOW_SECONDS

    def snapshot(self) -> RateLimitSnapshot:
        """Return the current rate limit state.

        ``remaining`` also subtracts slots reserved by requests still in
        flight, so it never promises a slot check_and_reserve would refuse.
        """
        self._roll_window()
        used = self._window.requests_in_window
        return RateLimitSnapshot(
            limit=self._window.limit,
            remaining=max(0, self._window.limit - used - self._reserved),
            reset_time=self._reset_time(),
            requests_this_hour=used,
        )


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
