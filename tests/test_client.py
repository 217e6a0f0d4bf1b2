"""Tests for the SimpleFactClient request pipeline."""

import asyncio
import json
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from simplefact import SimpleFactClient
from simplefact.core.config import ClientSettings
from simplefact.exceptions import ErrorCode, SimpleFactError

BASE_URL = "https://api.simplefact.test"
TOKEN_URL = f"{BASE_URL}/api/auth/api-token"

BUDGET = {"id": 5, "budget_number": "P-2024-005", "status": "pending", "total": 121.0}


class TestConstruction:
    """Test client construction from settings and options."""

    def test_from_options(self):
        client = SimpleFactClient(base_url=f"{BASE_URL}/", api_key="key-1")

        assert client.base_url == BASE_URL
        assert client.get_api_token() == "key-1"
        assert client.retry_policy.max_attempts == 3
        assert client.get_rate_limit_info().limit == 1000

    def test_options_override_settings(self, settings):
        client = SimpleFactClient(settings, retry_attempts=5, rate_limit_per_hour=10)

        assert client.retry_policy.max_attempts == 5
        assert client.get_rate_limit_info().limit == 10
        assert client.get_api_token() == "test-token"

    def test_invalid_options_rejected(self, settings):
        with pytest.raises(ValueError):
            SimpleFactClient(settings, retry_attempts=0)

    def test_services_attached(self, make_client):
        client = make_client()

        for name in ("clients", "budgets", "invoices", "payments", "verification", "client_portal"):
            assert getattr(client, name).client is client

    def test_token_helpers(self, make_client):
        client = make_client()
        client.set_api_token("other")
        assert client.get_api_token() == "other"

        client.clear_auth()
        assert client.get_api_token() is None

    def test_api_key_overrides_settings_token(self, settings):
        client = SimpleFactClient(settings, api_key="new")

        assert client.get_api_token() == "new"

    @pytest.mark.asyncio
    async def test_external_http_client_not_closed(self, settings):
        http_client = httpx.AsyncClient(base_url=BASE_URL)
        async with SimpleFactClient(settings, http_client=http_client) as client:
            assert client.http_client is http_client

        assert http_client.is_closed is False
        await http_client.aclose()


class TestExecute:
    """Test successful dispatch and envelope parsing."""

    @pytest.mark.asyncio
    async def test_get_parses_envelope(self, make_client, respx_mock):
        respx_mock.get(f"{BASE_URL}/budgets/5").mock(
            return_value=httpx.Response(200, json={"success": True, "data": BUDGET})
        )

        async with make_client() as client:
            response = await client.get("/budgets/5")

        assert response.success is True
        assert response.data == BUDGET

    @pytest.mark.asyncio
    async def test_bare_body_wrapped_as_data(self, make_client, respx_mock):
        respx_mock.get(f"{BASE_URL}/budgets").mock(
            return_value=httpx.Response(200, json=[BUDGET])
        )

        async with make_client() as client:
            response = await client.get("/budgets")

        assert response.data == [BUDGET]

    @pytest.mark.asyncio
    async def test_pagination_meta(self, make_client, respx_mock):
        body = {
            "success": True,
            "data": [BUDGET],
            "meta": {"page": 2, "per_page": 1, "total": 3, "total_pages": 3, "has_next": True, "has_prev": True},
        }
        respx_mock.get(f"{BASE_URL}/budgets").mock(return_value=httpx.Response(200, json=body))

        async with make_client() as client:
            response = await client.get("/budgets", params={"page": 2, "limit": 1, "status": None})

        assert response.meta.page == 2
        assert response.meta.has_next is True
        params = respx_mock.calls.last.request.url.params
        assert params["page"] == "2"
        assert "status" not in params

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self, make_client, respx_mock):
        route = respx_mock.post(f"{BASE_URL}/clients").mock(
            return_value=httpx.Response(201, json={"data": {"id": 1, "name": "Acme"}})
        )

        async with make_client() as client:
            await client.post("/clients", {"name": "Acme"})

        assert json.loads(route.calls.last.request.content) == {"name": "Acme"}

    @pytest.mark.asyncio
    async def test_empty_body(self, make_client, respx_mock):
        respx_mock.delete(f"{BASE_URL}/budgets/5").mock(return_value=httpx.Response(204))

        async with make_client() as client:
            response = await client.delete("/budgets/5")

        assert response.success is True
        assert response.data is None

    @pytest.mark.asyncio
    async def test_malformed_json(self, make_client, respx_mock):
        respx_mock.get(f"{BASE_URL}/budgets/5").mock(
            return_value=httpx.Response(200, text="{not json")
        )

        async with make_client() as client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/budgets/5")

        assert exc_info.value.code == ErrorCode.SERVER_ERROR
        assert "malformed response body" in exc_info.value.message


class TestHeaders:
    """Test header precedence."""

    @pytest.mark.asyncio
    async def test_header_precedence(self, make_client, respx_mock):
        """Test defaults < static headers < Authorization < per-call headers."""
        route = respx_mock.get(f"{BASE_URL}/invoices").mock(
            return_value=httpx.Response(200, json={"data": []})
        )

        async with make_client(headers={"X-Tenant": "acme", "Accept": "text/plain"}) as client:
            await client.get("/invoices", headers={"X-Trace-Id": "t-1"})
            await client.get("/invoices", headers={"Authorization": "Bearer per-call"})

        first = route.calls[0].request.headers
        assert first["Authorization"] == "Bearer test-token"
        assert first["X-Tenant"] == "acme"
        assert first["Accept"] == "text/plain"
        assert first["Content-Type"] == "application/json"
        assert first["User-Agent"].startswith("SimpleFact-SDK/")
        assert first["X-Trace-Id"] == "t-1"

        second = route.calls[1].request.headers
        assert second["Authorization"] == "Bearer per-call"

    @pytest.mark.asyncio
    async def test_unauthenticated_call_has_no_authorization(self, make_client, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/verify/abcdef123456").mock(
            return_value=httpx.Response(200, json={"data": {"verified": True}})
        )

        async with make_client() as client:
            await client.get("/verify/abcdef123456", authenticate=False)

        assert "Authorization" not in route.calls.last.request.headers


class TestErrors:
    """Test HTTP failures surface as normalized errors."""

    @pytest.mark.asyncio
    async def test_404_maps_to_generic_not_found(self, make_client, respx_mock):
        respx_mock.get(f"{BASE_URL}/clients/99").mock(return_value=httpx.Response(404))

        async with make_client() as client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/clients/99", context="Failed to get client 99")

        assert exc_info.value.code == ErrorCode.CLIENT_NOT_FOUND
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Failed to get client 99"

    @pytest.mark.asyncio
    async def test_400_body_overrides(self, make_client, respx_mock):
        body = {"success": False, "error": {"code": "INVALID_AMOUNT", "message": "Amount too high"}}
        route = respx_mock.post(f"{BASE_URL}/invoices/1/payments").mock(
            return_value=httpx.Response(400, json=body)
        )

        async with make_client() as client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.post("/invoices/1/payments", {"amount": 10})

        error = exc_info.value
        assert error.code == ErrorCode.INVALID_AMOUNT
        assert error.message == "Amount too high"
        assert error.status_code == 400
        assert error.details == body
        assert route.call_count == 1


class TestBackoffRetry:
    """Test retries with linear backoff."""

    @pytest.mark.asyncio
    async def test_persistent_503_exhausts_attempts(self, make_client, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/invoices").mock(return_value=httpx.Response(503))

        async with make_client(retry_attempts=3) as client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/invoices")

        assert exc_info.value.code == ErrorCode.SERVER_ERROR
        assert exc_info.value.status_code == 503
        assert route.call_count == 3

    @pytest.mark.asyncio
    async def test_backoff_delays_are_linear(self, make_client, respx_mock):
        respx_mock.get(f"{BASE_URL}/invoices").mock(return_value=httpx.Response(503))

        with patch("simplefact.client.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
            async with make_client(retry_attempts=3, retry_delay=0.1) as client:
                with pytest.raises(SimpleFactError):
                    await client.get("/invoices")

        assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, make_client, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/invoices/7").mock(
            side_effect=[
                httpx.Response(502),
                httpx.Response(429),
                httpx.Response(200, json={"data": {"id": 7}}),
            ]
        )

        async with make_client(retry_attempts=3) as client:
            response = await client.get("/invoices/7")
            info = client.get_rate_limit_info()

        assert response.data == {"id": 7}
        assert route.call_count == 3
        # Every dispatch counts against the hourly window
        assert info.requests_this_hour == 3

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self, make_client, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/invoices/7").mock(return_value=httpx.Response(403))

        async with make_client(retry_attempts=3) as client:
            with pytest.raises(SimpleFactError):
                await client.get("/invoices/7")

        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_network_error_exhausted(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        client = SimpleFactClient(settings, transport=httpx.MockTransport(handler), retry_attempts=2)
        async with client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/budgets", context="Failed to list budgets")

        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert exc_info.value.status_code is None
        assert exc_info.value.message == "Failed to list budgets: unreachable"


class TestAuthRetry:
    """Test the single re-authentication on 401."""

    @pytest.mark.asyncio
    async def test_401_refreshes_and_retries_once(self, make_client, respx_mock):
        token_route = respx_mock.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"token": "new-token", "expires_in": 3600})
        )
        route = respx_mock.get(f"{BASE_URL}/budgets/5").mock(
            side_effect=[
                httpx.Response(401, json={"error": "Token expired"}),
                httpx.Response(200, json={"data": BUDGET}),
            ]
        )

        async with make_client(retry_attempts=1, email="owner@example.com", password="secret") as client:
            response = await client.get("/budgets/5")
            assert client.get_api_token() == "new-token"

        assert response.data == BUDGET
        assert token_route.call_count == 1
        assert route.call_count == 2
        assert route.calls[0].request.headers["Authorization"] == "Bearer test-token"
        assert route.calls[1].request.headers["Authorization"] == "Bearer new-token"

    @pytest.mark.asyncio
    async def test_second_401_is_final(self, make_client, respx_mock):
        token_route = respx_mock.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"token": "new-token"})
        )
        route = respx_mock.get(f"{BASE_URL}/budgets/5").mock(return_value=httpx.Response(401))

        async with make_client(email="owner@example.com", password="secret") as client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/budgets/5")

        assert exc_info.value.code == ErrorCode.UNAUTHORIZED
        assert token_route.call_count == 1
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_401_without_credentials(self, make_client, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/budgets/5").mock(return_value=httpx.Response(401))

        async with make_client() as client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/budgets/5")

        assert exc_info.value.code == ErrorCode.UNAUTHORIZED
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_401_with_auto_refresh_disabled(self, make_client, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/budgets/5").mock(return_value=httpx.Response(401))

        async with make_client(
            auto_refresh_token=False, email="owner@example.com", password="secret"
        ) as client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/budgets/5")

        assert exc_info.value.code == ErrorCode.UNAUTHORIZED
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_surfaces(self, make_client, respx_mock):
        respx_mock.post(TOKEN_URL).mock(
            return_value=httpx.Response(401, json={"error": "Invalid credentials"})
        )
        respx_mock.get(f"{BASE_URL}/budgets/5").mock(return_value=httpx.Response(401))

        async with make_client(email="owner@example.com", password="wrong") as client:
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/budgets/5")

        assert exc_info.value.code == ErrorCode.UNAUTHORIZED
        assert exc_info.value.message == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_proactive_refresh_before_dispatch(self, settings, clock, respx_mock):
        token_route = respx_mock.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"token": "new-token", "expires_in": 3600})
        )
        route = respx_mock.get(f"{BASE_URL}/budgets/5").mock(
            return_value=httpx.Response(200, json={"data": BUDGET})
        )

        client = SimpleFactClient(
            settings, clock=clock, email="owner@example.com", password="secret"
        )
        client.token_manager.set_token("old-token", expires_in=60)
        async with client:
            await client.get("/budgets/5")

        assert token_route.call_count == 1
        assert route.calls.last.request.headers["Authorization"] == "Bearer new-token"

    @pytest.mark.asyncio
    async def test_concurrent_401s_share_one_refresh(self, settings):
        """Test N concurrent requests failing with 401 trigger one token exchange."""
        token_calls = []

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/auth/api-token":
                token_calls.append(request)
                await asyncio.sleep(0.05)
                return httpx.Response(200, json={"token": "new-token", "expires_in": 3600})
            if request.headers.get("Authorization") == "Bearer new-token":
                return httpx.Response(200, json={"data": {"path": request.url.path}})
            return httpx.Response(401)

        client = SimpleFactClient(
            settings,
            transport=httpx.MockTransport(handler),
            email="owner@example.com",
            password="secret",
        )
        async with client:
            responses = await asyncio.gather(
                *(client.get(f"/budgets/{i}") for i in range(5))
            )

        assert len(token_calls) == 1
        assert [r.data["path"] for r in responses] == [f"/budgets/{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_concurrent_proactive_refreshes_share_one_exchange(self, settings, clock):
        """Test N concurrent calls with an expiring token trigger one token exchange."""
        token_calls = []

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/auth/api-token":
                token_calls.append(request)
                await asyncio.sleep(0.05)
                return httpx.Response(200, json={"token": "new-token", "expires_in": 3600})
            return httpx.Response(
                200, json={"data": {"authorization": request.headers.get("Authorization")}}
            )

        client = SimpleFactClient(
            settings,
            transport=httpx.MockTransport(handler),
            clock=clock,
            email="owner@example.com",
            password="secret",
        )
        client.token_manager.set_token("old-token", expires_in=60)
        async with client:
            responses = await asyncio.gather(
                *(client.get(f"/budgets/{i}") for i in range(5))
            )

        assert len(token_calls) == 1
        assert [r.data["authorization"] for r in responses] == ["Bearer new-token"] * 5
        assert client.get_api_token() == "new-token"


class TestRateLimiting:
    """Test the client-side rate gate and server hints."""

    @pytest.mark.asyncio
    async def test_local_limit_blocks_before_dispatch(self, make_client, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/clients").mock(
            return_value=httpx.Response(200, json={"data": []})
        )

        async with make_client(rate_limit_per_hour=2) as client:
            await client.get("/clients")
            await client.get("/clients")
            with pytest.raises(SimpleFactError) as exc_info:
                await client.get("/clients")

        error = exc_info.value
        assert error.code == ErrorCode.RATE_LIMIT_EXCEEDED
        assert error.status_code == 429
        assert error.details["limit"] == 2
        assert "reset_time" in error.details
        assert route.call_count == 2

    @pytest.mark.asyncio
    async def test_server_headers_override_local_state(self, make_client, respx_mock):
        reset = int(time.time()) + 1800
        respx_mock.get(f"{BASE_URL}/clients").mock(
            return_value=httpx.Response(
                200,
                json={"data": []},
                headers={
                    "x-ratelimit-limit": "500",
                    "x-ratelimit-remaining": "480",
                    "x-ratelimit-reset": str(reset),
                },
            )
        )

        async with make_client() as client:
            await client.get("/clients")
            info = client.get_rate_limit_info()

        assert info.limit == 500
        assert info.remaining == 480
        assert info.requests_this_hour == 20
        assert int(info.reset_time.timestamp()) == reset

    @pytest.mark.asyncio
    async def test_failed_refresh_releases_reservation(self, settings, clock, respx_mock):
        respx_mock.post(TOKEN_URL).mock(return_value=httpx.Response(401))

        client = SimpleFactClient(
            settings, clock=clock, rate_limit_per_hour=1, email="a@b.c", password="x"
        )
        client.token_manager.set_token("old-token", expires_in=10)
        async with client:
            with pytest.raises(SimpleFactError):
                await client.get("/clients")
            info = client.get_rate_limit_info()

        assert info.requests_this_hour == 0
        assert info.remaining == 1

    @pytest.mark.asyncio
    async def test_unencodable_body_releases_reservation(self, make_client, clock, respx_mock):
        """Test a request that fails to build does not hold its rate slot."""
        route = respx_mock.get(f"{BASE_URL}/clients").mock(
            return_value=httpx.Response(200, json={"data": []})
        )

        async with make_client(rate_limit_per_hour=2, clock=clock) as client:
            for _ in range(2):
                with pytest.raises(SimpleFactError):
                    await client.post("/clients", {"when": object()})
            info = client.get_rate_limit_info()

            clock.advance(7200)
            await client.get("/clients")
            await client.get("/clients")

        assert info.remaining == 2
        assert info.requests_this_hour == 0
        assert route.call_count == 2


class TestHealthCheck:
    """Test the health check."""

    @pytest.mark.asyncio
    async def test_healthy(self, make_client, respx_mock):
        route = respx_mock.get(f"{BASE_URL}/api/health").mock(
            return_value=httpx.Response(200, json={"status": "healthy", "services": {"database": True}})
        )

        async with make_client() as client:
            result = await client.get_health_check()

        assert result.status == "healthy"
        assert result.services == {"database": True}
        assert result.timestamp
        assert "Authorization" not in route.calls.last.request.headers

    @pytest.mark.asyncio
    async def test_unhealthy_on_failure(self, make_client, respx_mock):
        respx_mock.get(f"{BASE_URL}/api/health").mock(return_value=httpx.Response(503))

        async with make_client(retry_attempts=1) as client:
            result = await client.get_health_check()

        assert result.status == "unhealthy"

    @pytest.mark.asyncio
    async def test_unexpected_payload_is_healthy(self, make_client, respx_mock):
        respx_mock.get(f"{BASE_URL}/api/health").mock(
            return_value=httpx.Response(200, json={"data": {"uptime": 12}})
        )

        async with make_client() as client:
            result = await client.get_health_check()

        assert result.status == "healthy"


class TestSettingsFromEnvironment:
    """Test building a client from environment variables."""

    def test_env_settings(self, monkeypatch):
        monkeypatch.setenv("SIMPLEFACT_BASE_URL", BASE_URL)
        monkeypatch.setenv("SIMPLEFACT_API_TOKEN", "env-token")

        client = SimpleFactClient(ClientSettings(_env_file=None))

        assert client.get_api_token() == "env-token"


class TestEndToEnd:
    """Test a full call through construction, transport failure and recovery."""

    @pytest.mark.asyncio
    async def test_network_error_then_success(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json={"success": True, "data": BUDGET})

        client = SimpleFactClient(
            base_url="https://api.example.com",
            api_token="tok",
            retry_attempts=2,
            retry_delay=0.05,
            transport=httpx.MockTransport(handler),
        )
        async with client:
            start = time.monotonic()
            response = await client.execute("GET", "/budgets/5")
            elapsed = time.monotonic() - start

        assert response.data == BUDGET
        assert len(calls) == 2
        assert all(str(r.url) == "https://api.example.com/budgets/5" for r in calls)
        assert calls[-1].headers["Authorization"] == "Bearer tok"
        assert elapsed >= 0.05
