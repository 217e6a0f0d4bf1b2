"""HTTP client construction for the SDK.

The SDK talks to the API through a single ``httpx.AsyncClient`` per
``SimpleFactClient``. The transport is pluggable: any
``httpx.AsyncBaseTransport`` (for example ``httpx.MockTransport`` in tests)
can be injected.
"""

from typing import Optional

import httpx

from simplefact.core.config import ClientSettings
from simplefact.version import __version__

USER_AGENT = f"SimpleFact-SDK/{__version__} (Python)"


def default_headers() -> dict[str, str]:
    """Headers sent with every request before static and caller overrides."""
    return {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }


def create_http_client(
    settings: ClientSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs,
) -> httpx.AsyncClient:
    """Create a new HTTP client bound to the configured base URL.

    The returned client should be closed when done:
        async with create_http_client(settings) as client:
            ...

    Args:
        settings: Client settings (base_url and timeout are used)
        transport: Optional transport override
        **kwargs: Extra arguments forwarded to httpx.AsyncClient

    Returns:
        A new httpx.AsyncClient instance
    """
    config = {
        "base_url": settings.base_url,
        "timeout": httpx.Timeout(settings.timeout),
    }
    if transport is not None:
        config["transport"] = transport
    config.update(kwargs)
    return httpx.AsyncClient(**config)
