"""Shared fixtures for SDK tests."""

import pytest

from simplefact import SimpleFactClient
from simplefact.core.config import ClientSettings

BASE_URL = "https://api.simplefact.test"


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """Settings with a static token and no backoff wait."""
    return ClientSettings(
        _env_file=None,
        base_url=BASE_URL,
        api_token="test-token",
        retry_delay=0.0,
    )


@pytest.fixture
def make_client(settings):
    """Factory for clients built from the default settings plus overrides."""

    def _make(**overrides) -> SimpleFactClient:
        return SimpleFactClient(settings, **overrides)

    return _make
