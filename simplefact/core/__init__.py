"""Configuration, logging and HTTP transport setup."""

from simplefact.core.config import ClientSettings
from simplefact.core.http_client import USER_AGENT, create_http_client, default_headers
from simplefact.core.logging import get_log_context, get_logger, setup_logging

__all__ = [
    "ClientSettings",
    "USER_AGENT",
    "create_http_client",
    "default_headers",
    "get_log_context",
    "get_logger",
    "setup_logging",
]
