"""Async Python SDK for the SimpleFact invoicing API."""

from simplefact.client import (
    RateLimiter,
    RateLimitSnapshot,
    RetryPolicy,
    SimpleFactClient,
    TokenManager,
)
from simplefact.core.config import ClientSettings
from simplefact.core.logging import setup_logging
from simplefact.exceptions import ErrorCode, SimpleFactError
from simplefact.version import __version__

__all__ = [
    "SimpleFactClient",
    "ClientSettings",
    "SimpleFactError",
    "ErrorCode",
    "RateLimiter",
    "RateLimitSnapshot",
    "RetryPolicy",
    "TokenManager",
    "setup_logging",
    "__version__",
]
