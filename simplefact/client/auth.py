"""Bearer token management with single-flight refresh."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from simplefact.client.errors import build_error, normalize_error
from simplefact.core.http_client import default_headers
from simplefact.core.logging import get_logger
from simplefact.exceptions import ErrorCode

logger = get_logger(__name__)

TOKEN_ENDPOINT = "/api/auth/api-token"

# Refresh proactively this many seconds before the token expires
REFRESH_LEAD_SECONDS = 5 * 60


@dataclass
class TokenState:
    """Current token, its expiry and the in-flight refresh, if any."""
    token: Optional[str] = None
    expires_at: Optional[float] = None
    refresh_task: Optional["asyncio.Task[str]"] = None


class TokenManager:
    """Holds the bearer token and exchanges credentials for new ones.

    Concurrent calls to ``refresh`` share one underlying request: every
    waiter receives the same token or the same error.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the token manager.

        Args:
            http_client: Client used for the token exchange request
            token: Initial bearer token
            email: Account e-mail for token exchange
            password: Account password for token exchange
            clock: Time source returning epoch seconds
        """
        self._http_client = http_client
        self._email = email
        self._password = password
        self._clock = clock
        self._state = TokenState(token=token)

    @property
    def token(self) -> Optional[str]:
        return self._state.token

    @property
    def expires_at(self) -> Optional[float]:
        return self._state.expires_at

    @property
    def can_refresh(self) -> bool:
        """Whether credentials for a token exchange are configured."""
        return bool(self._email and self._password)

    @property
    def refresh_in_flight(self) -> bool:
        return self._state.refresh_task is not None

    def get_auth_header(self) -> Optional[str]:
        if not self._state.token:
            return None
        return f"Bearer {self._state.token}"

    def should_refresh(self) -> bool:
        """True when the token expires within the refresh lead window."""
        if not self._state.token or self._state.expires_at is None:
            return False
        return self._clock() >= self._state.expires_at - REFRESH_LEAD_SECONDS

    def set_token(self, token: str, expires_in: Optional[float] = None) -> None:
        """Replace the token without any network call."""
        self._state.token = token
        self._state.expires_at = (
            self._clock() + expires_in if expires_in is not None else None
        )

    def clear(self) -> None:
        """Forget the token and its expiry."""
        self._state.token = None
        self._state.expires_at = None

    async def refresh(self) -> str:
        """Obtain a new token, coalescing concurrent callers.

        Returns:
            The new token

        Raises:
            SimpleFactError: UNAUTHORIZED when no credentials are configured,
                otherwise the normalized failure of the exchange
        """
        task = self._state.refresh_task
        if task is None:
            if not self.can_refresh:
                raise build_error(
                    ErrorCode.UNAUTHORIZED,
                    "Email and password required for token refresh",
                    status_code=401,
                )
            task = asyncio.create_task(self._run_refresh())
            task.add_done_callback(_consume_exception)
            self._state.refresh_task = task
        else:
            logger.debug("Token refresh already in progress, waiting for it")
        return await asyncio.shield(task)

    async def _run_refresh(self) -> str:
        try:
            return await self._exchange_credentials()
        finally:
            self._state.refresh_task = None

    async def _exchange_credentials(self) -> str:
        logger.debug("Requesting new API token")
        try:
            response = await self._http_client.post(
                TOKEN_ENDPOINT,
                json={"email": self._email, "password": self._password},
                headers=default_headers(),
            )
            response.raise_for_status()
            body = response.json()
        except Exception as e:
            error = normalize_error(e, "Failed to refresh API token")
            logger.warning(f"Token refresh failed: {error.code.value}: {error.message}")
            raise error from e

        token, expires_in = _extract_token(body)
        if not token:
            raise build_error(
                ErrorCode.INVALID_TOKEN,
                "Invalid token response",
                status_code=response.status_code,
                details=body,
            )

        self.set_token(token, expires_in)
        logger.info("API token refreshed")
        return token


def _consume_exception(task: "asyncio.Task[str]") -> None:
    """Mark a failed refresh as retrieved even if every waiter was cancelled."""
    if not task.cancelled():
        task.exception()


def _extract_token(body: Any) -> tuple[Optional[str], Optional[float]]:
    """Read token and lifetime from a top-level or data-wrapped body."""
    if not isinstance(body, dict):
        return None, None
    payload = body.get("data") if isinstance(body.get("data"), dict) else body
    token = payload.get("token")
    expires_in = payload.get("expires_in")
    try:
        expires_in = float(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        expires_in = None
    return (token if isinstance(token, str) else None), expires_in
