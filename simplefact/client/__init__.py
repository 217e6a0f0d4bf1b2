"""Request pipeline for the SimpleFact API.

This package provides:
- The API client and its request orchestration (SimpleFactClient)
- Client-side hourly rate limiting (RateLimiter, RateLimitSnapshot)
- Bearer token handling with single-flight refresh (TokenManager)
- Retry policy with linear backoff (RetryPolicy)
- Error normalization (normalize_error)
"""

from simplefact.client.auth import TokenManager
from simplefact.client.client import SimpleFactClient
from simplefact.client.errors import normalize_error
from simplefact.client.rate_limit import RateLimiter, RateLimitSnapshot
from simplefact.client.retry import RetryPolicy

__all__ = [
    "SimpleFactClient",
    "RateLimiter",
    "RateLimitSnapshot",
    "TokenManager",
    "RetryPolicy",
    "normalize_error",
]
