"""Retry policy with linear backoff for API requests.

This module decides whether a failed dispatch should be retried and how
long to wait before the next attempt.
"""

from dataclasses import dataclass
from typing import Optional

from simplefact.client.errors import is_network_error, status_of

RETRYABLE_STATUS_CODES = frozenset({408, 429})


@dataclass
class RetryPolicy:
    """Configuration for retry behavior with linear backoff.

    Attributes:
        max_attempts: Total dispatches allowed per logical call (default: 3)
        base_delay: Delay unit in seconds (default: 1.0)

    Example:
        >>> policy = RetryPolicy(max_attempts=3, base_delay=0.1)
        >>> policy.delay_for(attempt=2)  # Returns 0.2
    """

    max_attempts: int = 3
    base_delay: float = 1.0

    def is_retryable(self, error: BaseException) -> bool:
        """Check if an error should trigger a retry.

        Network errors (no response) and 5xx, 408 and 429 responses are
        retryable. Accepts raw httpx exceptions or SimpleFactError.
        """
        if is_network_error(error):
            return True
        status = status_of(error)
        if status is None:
            return False
        return status >= 500 or status in RETRYABLE_STATUS_CODES

    def should_retry(
        self,
        error: BaseException,
        attempt: int,
        max_attempts: Optional[int] = None,
    ) -> bool:
        """Whether attempt number ``attempt`` (1-indexed) may be followed by another."""
        limit = self.max_attempts if max_attempts is None else max_attempts
        return self.is_retryable(error) and attempt < limit

    def delay_for(self, attempt: int, base_delay: Optional[float] = None) -> float:
        """Calculate the wait before the retry following ``attempt``.

        Uses linear backoff: delay = base_delay * attempt

        Args:
            attempt: The attempt that just failed (1-indexed)
            base_delay: Override for the configured base delay

        Returns:
            Delay in seconds
        """
        base = self.base_delay if base_delay is None else base_delay
        return base * attempt
