"""SimpleFact API client.

``SimpleFactClient.execute`` is the single entry point used by every
resource service. Each logical call runs a fixed pipeline:

    RATE_CHECK -> TOKEN_REFRESH? -> DISPATCH -> SUCCESS
                                             -> AUTH_RETRY (once, back to RATE_CHECK)
                                             -> BACKOFF_RETRY (bounded, back to DISPATCH)
                                             -> FAILED
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

import httpx
from pydantic import ValidationError

from simplefact.client.auth import TokenManager
from simplefact.client.errors import normalize_error, status_of
from simplefact.client.rate_limit import RateLimiter, RateLimitSnapshot
from simplefact.client.retry import RetryPolicy
from simplefact.core.config import ClientSettings
from simplefact.core.http_client import create_http_client, default_headers
from simplefact.core.logging import get_log_context, get_logger
from simplefact.exceptions import SimpleFactError
from simplefact.models import ApiResponse, HealthCheckResult

logger = get_logger(__name__)

HEALTH_ENDPOINT = "/api/health"


class SimpleFactClient:
    """Authenticated, rate-limited, retrying client for the SimpleFact API.

    Usage:
        async with SimpleFactClient(base_url="https://api.example.com", api_token="tok") as client:
            budget = await client.budgets.get(5)

    Settings can be passed as a ClientSettings instance or as keyword
    options (see ClientSettings for the accepted names). If http_client is
    provided it is used for all requests and is not closed by ``close``.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        **options: Any,
    ):
        """Initialize the client.

        Args:
            settings: Complete settings; mutually exclusive with options
            transport: Optional transport for the internally created HTTP client
            http_client: Optional externally managed HTTP client
            clock: Time source for rate limiting and token expiry
            **options: ClientSettings fields (base_url, api_token, ...)
        """
        if settings is None:
            settings = ClientSettings(**options)
        elif options:
            settings = type(settings)(**{**settings.model_dump(), **options})
        self.settings = settings

        self._owns_http_client = http_client is None
        self._http_client = http_client or create_http_client(settings, transport=transport)

        self.rate_limiter = RateLimiter(limit=settings.rate_limit_per_hour, clock=clock)
        self.token_manager = TokenManager(
            self._http_client,
            token=settings.api_token,
            email=settings.email,
            password=settings.password,
            clock=clock,
        )
        self.retry_policy = RetryPolicy(
            max_attempts=settings.retry_attempts,
            base_delay=settings.retry_delay,
        )

        if settings.debug:
            get_logger("simplefact").setLevel("DEBUG")

        # Imported here to avoid a cycle: services type-hint the client
        from simplefact.services import (
            BudgetsService,
            ClientPortalService,
            ClientsService,
            InvoicesService,
            PaymentsService,
            VerificationService,
        )

        self.clients = ClientsService(self)
        self.budgets = BudgetsService(self)
        self.invoices = InvoicesService(self)
        self.payments = PaymentsService(self)
        self.verification = VerificationService(self)
        self.client_portal = ClientPortalService(self)

    @property
    def base_url(self) -> str:
        return self.settings.base_url

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client

    async def __aenter__(self) -> "SimpleFactClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # HTTP verbs
    # ------------------------------------------------------------------

    async def get(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.execute("GET", path, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.execute("POST", path, body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.execute("PUT", path, body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs: Any) -> ApiResponse:
        return await self.execute("PATCH", path, body, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.execute("DELETE", path, **kwargs)

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    async def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        authenticate: bool = True,
        context: Optional[str] = None,
    ) -> ApiResponse:
        """Run a request through the full pipeline and parse the envelope.

        Args:
            method: HTTP method
            path: Path relative to base_url
            body: JSON-serializable request body
            params: Query parameters; None values are dropped
            headers: Per-call headers, taking precedence over all others
            timeout: Per-call timeout in seconds
            authenticate: Whether to send the Authorization header
            context: Operation description used in error messages

        Returns:
            Parsed response envelope

        Raises:
            SimpleFactError: On any terminal failure
        """
        response = await self.request(
            method,
            path,
            body,
            params=params,
            headers=headers,
            timeout=timeout,
            authenticate=authenticate,
            context=context,
        )
        return self._parse_envelope(response, context or f"{method.upper()} {path} failed")

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        authenticate: bool = True,
        context: Optional[str] = None,
    ) -> httpx.Response:
        """Same pipeline as ``execute`` but returns the raw response.

        Used for binary downloads (PDF, XML).
        """
        method = method.upper()
        context = context or f"{method} {path} failed"
        query = {k: v for k, v in (params or {}).items() if v is not None}

        attempt = 1
        auth_retried = False
        gate = True  # rate check and token refresh run before the first dispatch and the auth retry
        while True:
            reserved = False
            if gate:
                await self._pass_gate(authenticate)
                reserved = True
                gate = False

            try:
                return await self._dispatch(
                    method,
                    path,
                    body,
                    query,
                    headers,
                    timeout,
                    authenticate,
                    attempt=attempt,
                    reserved=reserved,
                )
            except SimpleFactError:
                raise
            except Exception as e:
                if self._should_reauthenticate(e, authenticate, auth_retried):
                    auth_retried = True
                    logger.info(
                        f"Received 401 for {method} {path}, refreshing token and retrying once",
                        extra=get_log_context(method=method, path=path, status_code=401),
                    )
                    try:
                        await self.token_manager.refresh()
                    except Exception as refresh_error:
                        raise normalize_error(refresh_error, context) from refresh_error
                    gate = True
                    continue

                if not self.retry_policy.should_retry(e, attempt):
                    raise self._fail(e, method, path, context) from e

                delay = self.retry_policy.delay_for(attempt)
                logger.warning(
                    f"Retry {attempt}/{self.retry_policy.max_attempts - 1} for {method} {path} "
                    f"after {type(e).__name__}: {e}. Waiting {delay:.2f}s...",
                    extra=get_log_context(
                        method=method, path=path, status_code=status_of(e), attempt=attempt
                    ),
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _pass_gate(self, authenticate: bool) -> None:
        """Reserve a rate slot and refresh the token if it is about to expire."""
        self.rate_limiter.check_and_reserve()
        if (
            authenticate
            and self.settings.auto_refresh_token
            and self.token_manager.should_refresh()
        ):
            try:
                await self.token_manager.refresh()
            except BaseException:
                self.rate_limiter.release()
                raise

    def _should_reauthenticate(
        self,
        error: BaseException,
        authenticate: bool,
        auth_retried: bool,
    ) -> bool:
        return (
            status_of(error) == 401
            and authenticate
            and not auth_retried
            and self.settings.auto_refresh_token
            and self.token_manager.can_refresh
        )

    async def _dispatch(
        self,
        method: str,
        path: str,
        body: Any,
        params: Mapping[str, Any],
        headers: Optional[Mapping[str, str]],
        timeout: Optional[float],
        authenticate: bool,
        attempt: int,
        reserved: bool,
    ) -> httpx.Response:
        """Send one HTTP request and raise for error statuses.

        A request that never reaches the transport (for example a body that
        cannot be encoded as JSON) gives its reservation back.
        """
        start = time.perf_counter()
        try:
            request = self._http_client.build_request(
                method,
                path,
                json=body,
                params=params or None,
                headers=self._build_headers(headers, authenticate),
                timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
            logger.debug(
                f"{method} {path}",
                extra=get_log_context(method=method, path=path, attempt=attempt),
            )
            response = await self._http_client.send(request)
        except httpx.TransportError:
            # The request may have reached the server before failing
            self.rate_limiter.record_completion(reserved=reserved)
            raise
        except BaseException:
            if reserved:
                self.rate_limiter.release()
            raise
        self.rate_limiter.record_completion(reserved=reserved)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"Response {response.status_code} for {method} {path}",
            extra=get_log_context(
                method=method,
                path=path,
                status_code=response.status_code,
                attempt=attempt,
                duration_ms=round(duration_ms, 2),
            ),
        )

        if response.is_error:
            await response.aread()
            response.raise_for_status()

        self.rate_limiter.update_from_headers(response.headers)
        return response

    def _build_headers(
        self,
        headers: Optional[Mapping[str, str]],
        authenticate: bool,
    ) -> dict[str, str]:
        """Merge headers: defaults < static settings < Authorization < caller."""
        merged = default_headers()
        merged.update(self.settings.headers)
        if authenticate:
            auth_header = self.token_manager.get_auth_header()
            if auth_header:
                merged["Authorization"] = auth_header
        if headers:
            merged.update(headers)
        return merged

    def _fail(
        self,
        error: BaseException,
        method: str,
        path: str,
        context: str,
    ) -> SimpleFactError:
        normalized = normalize_error(error, context)
        logger.error(
            f"{method} {path} failed: {normalized.code.value}: {normalized.message}",
            extra=get_log_context(
                method=method,
                path=path,
                status_code=normalized.status_code,
                error_code=normalized.code.value,
            ),
        )
        return normalized

    def _parse_envelope(self, response: httpx.Response, context: str) -> ApiResponse:
        """Turn a response body into an ApiResponse."""
        try:
            body = response.json() if response.content else None
        except ValueError as e:
            raise normalize_error(e, f"{context}: malformed response body") from e

        if isinstance(body, dict) and ("data" in body or "success" in body):
            try:
                return ApiResponse.model_validate(body)
            except ValueError as e:
                raise normalize_error(e, f"{context}: malformed response envelope") from e
        return ApiResponse(success=True, data=body)

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    def get_rate_limit_info(self) -> RateLimitSnapshot:
        """Current rate limit state."""
        return self.rate_limiter.snapshot()

    async def get_health_check(self) -> HealthCheckResult:
        """Probe the API health endpoint.

        Never raises: any failure is reported as ``status="unhealthy"``.
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            response = await self.execute(
                "GET", HEALTH_ENDPOINT, authenticate=False, context="Health check failed"
            )
        except SimpleFactError as e:
            logger.warning(f"Health check failed: {e.code.value}: {e.message}")
            return HealthCheckResult(status="unhealthy", timestamp=now)

        data = response.data
        if isinstance(data, dict) and data.get("status") in ("healthy", "unhealthy"):
            try:
                return HealthCheckResult.model_validate({"timestamp": now, **data})
            except ValidationError:
                logger.debug("Unexpected health payload, reporting healthy")
        return HealthCheckResult(status="healthy", timestamp=now)

    async def refresh_token(self) -> str:
        """Force a token exchange using the configured credentials."""
        return await self.token_manager.refresh()

    def set_api_token(self, token: str) -> None:
        self.token_manager.set_token(token)

    def get_api_token(self) -> Optional[str]:
        return self.token_manager.token

    def clear_auth(self) -> None:
        """Forget the current token (logout)."""
        self.token_manager.clear()
