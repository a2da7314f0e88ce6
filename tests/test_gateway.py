"""
Tests for the HTTP verb gateway and error normalization.
"""

import httpx
import pytest

from vectra_saas.auth import Token, TokenManager
from vectra_saas.exceptions import ApiError, NetworkError
from vectra_saas.gateway import ApiGateway
from vectra_saas.throttle import FixedDelayThrottle

from conftest import SITE, request_json


class CountingSleep:
    def __init__(self, platform):
        self.platform = platform
        self.seen_requests: list[int] = []

    async def __call__(self, seconds: float) -> None:
        self.seen_requests.append(len(self.platform.requests))


@pytest.fixture
def gateway(credentials, http_factory, clock):
    return ApiGateway(
        credentials,
        "v3",
        TokenManager(credentials, http_factory, clock=clock),
        FixedDelayThrottle(delay_seconds=0),
        http_factory,
    )


class TestApiGateway:

    def test_url_composition(self, gateway):
        assert gateway.api_base == f"{SITE}/api/v3"
        assert gateway.url_for("/detections/1") == f"{SITE}/api/v3/detections/1"
        assert gateway.url_for("rules") == f"{SITE}/api/v3/rules"

    @pytest.mark.asyncio
    async def test_fetch_sends_bearer(self, gateway, platform, sample_detection_data):
        platform.route("GET", platform.api("/detections/1042"), sample_detection_data)

        data = await gateway.fetch_json("/detections/1042")

        assert data == sample_detection_data
        (request,) = platform.api_requests
        assert request.headers["Authorization"] == "Bearer token-1"

    @pytest.mark.asyncio
    async def test_verbs(self, gateway, platform):
        for method in ("POST", "PATCH", "PUT", "DELETE"):
            platform.route(method, platform.api("/rules"), {"method": method})

        assert await gateway.create_json("/rules", {"a": 1}) == {"method": "POST"}
        assert await gateway.patch_json("/rules", {"b": 2}) == {"method": "PATCH"}
        assert await gateway.replace_json("/rules", {"c": 3}) == {"method": "PUT"}
        assert await gateway.remove_json("/rules", {"d": 4}) == {"method": "DELETE"}

        bodies = [request_json(r) for r in platform.api_requests]
        assert bodies == [{"a": 1}, {"b": 2}, {"c": 3}, {"d": 4}]

    @pytest.mark.asyncio
    async def test_remove_without_body(self, gateway, platform):
        platform.route("DELETE", platform.api("/assignments/3"), httpx.Response(204))

        assert await gateway.remove_json("/assignments/3") is None
        assert platform.api_requests[0].content == b""

    @pytest.mark.asyncio
    async def test_token_checked_then_throttled_before_call(self, credentials, http_factory, clock, platform):
        sleep = CountingSleep(platform)
        gateway = ApiGateway(
            credentials,
            "v3",
            TokenManager(credentials, http_factory, clock=clock),
            FixedDelayThrottle(delay_seconds=0.5, sleep=sleep),
            http_factory,
        )
        platform.route("GET", platform.api("/users/1"), {"id": 1})

        await gateway.fetch_json("/users/1")

        # Sleep happened after the token request and before the API request.
        assert sleep.seen_requests == [1]
        assert [r.url.path for r in platform.requests] == ["/oauth2/token", "/api/v3/users/1"]

    @pytest.mark.asyncio
    async def test_not_found_normalized(self, gateway, platform):
        with pytest.raises(ApiError) as exc_info:
            await gateway.fetch_json("/detections/999")

        err = exc_info.value
        assert err.status == 404
        assert err.status_text == "Not Found"
        assert err.url == f"{SITE}/api/v3/detections/999"
        assert err.to_dict() == {
            "status": 404,
            "statusText": "Not Found",
            "url": f"{SITE}/api/v3/detections/999",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["create_json", "patch_json", "replace_json"])
    async def test_every_verb_normalizes(self, gateway, platform, method):
        for verb in ("POST", "PATCH", "PUT"):
            platform.route(verb, platform.api("/rules"), httpx.Response(400))

        with pytest.raises(ApiError) as exc_info:
            await getattr(gateway, method)("/rules", {})
        assert exc_info.value.status == 400

    @pytest.mark.asyncio
    async def test_unauthorized_drops_token(self, gateway, platform):
        platform.route("GET", platform.api("/users"), httpx.Response(401))

        with pytest.raises(ApiError):
            await gateway.fetch_json("/users")
        assert gateway.token_manager.token is None

    @pytest.mark.asyncio
    async def test_unauthorized_keeps_concurrently_refreshed_token(self, gateway, platform, clock):
        """A 401 for an old token leaves a token refreshed in the meantime alone."""
        manager = gateway.token_manager
        fresh = Token(value="token-fresh", expires_at=clock() + 3600)

        def rejected(request):
            manager._token = fresh
            return httpx.Response(401)

        platform.route("GET", platform.api("/users"), rejected)

        with pytest.raises(ApiError):
            await gateway.fetch_json("/users")
        assert manager.token is fresh

    @pytest.mark.asyncio
    async def test_connection_failure_is_network_error(self, credentials, clock):
        def handler(request):
            if request.url.path == "/oauth2/token":
                return httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        gateway = ApiGateway(
            credentials,
            "v3",
            TokenManager(credentials, lambda: http, clock=clock),
            FixedDelayThrottle(delay_seconds=0),
            lambda: http,
        )

        with pytest.raises(NetworkError) as exc_info:
            await gateway.fetch_json("/detections/999")

        assert not isinstance(exc_info.value, ApiError)
        assert isinstance(exc_info.value.original, httpx.ConnectError)
        assert gateway.get_stats()["error_count"] == 1

    @pytest.mark.asyncio
    async def test_stats(self, gateway, platform):
        platform.route("GET", platform.api("/users/1"), {"id": 1})

        await gateway.fetch_json("/users/1")
        await gateway.fetch_json("/users/1")

        stats = gateway.get_stats()
        assert stats["request_count"] == 2
        assert stats["error_count"] == 0
        assert stats["token_exchanges"] == 1
