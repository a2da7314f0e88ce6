"""
Pytest configuration and fixtures for Vectra SaaS client tests.
"""

import json
from typing import Any, Callable

import httpx
import pytest

from vectra_saas.auth import Credentials
from vectra_saas.client import VectraSaaSClient

SITE = "https://000000000000.foo.portal.vectra.ai"
CLIENT_ID = "client-id"
SECRET = "s3cret"


class ManualClock:
    """Clock the tests move by hand."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePlatform:
    """
    In-memory stand-in for the SaaS brain, served through httpx.MockTransport.

    Routes are keyed on (method, path with query). A route falls back to
    (method, path) when no exact query match exists. A route value can be a
    dict/list (JSON 200), an httpx.Response, a list of those (served in
    order), or a callable taking the request.
    """

    def __init__(self, site: str = SITE):
        self.site = site
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Any] = {}
        self.token_status = 200
        self.expires_in = 3600
        self.token_counter = 0

    # -- setup --------------------------------------------------------------

    def route(self, method: str, target: str, response: Any) -> None:
        self.routes[(method, target)] = response

    def api(self, path: str) -> str:
        return f"/api/v3{path}"

    # -- inspection ---------------------------------------------------------

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/oauth2/token")]

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if not r.url.path.endswith("/oauth2/token")]

    def targets(self) -> list[str]:
        return [r.url.raw_path.decode() for r in self.api_requests]

    # -- transport ----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path.endswith("/oauth2/token"):
            return self._token(request)

        target = request.url.raw_path.decode()
        route = self.routes.get((request.method, target))
        if route is None:
            route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"detail": "Not found."})

        if isinstance(route, list) and route and isinstance(route[0], httpx.Response):
            return route.pop(0)
        if callable(route):
            return route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    def _token(self, request: httpx.Request) -> httpx.Response:
        if self.token_status != 200:
            return httpx.Response(self.token_status, json={"error": "invalid_client"})
        self.token_counter += 1
        return httpx.Response(
            200,
            json={
                "access_token": f"token-{self.token_counter}",
                "expires_in": self.expires_in,
                "token_type": "Bearer",
            },
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content) if request.content else None


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(SITE, CLIENT_ID, SECRET)


@pytest.fixture
def http_factory(platform) -> Callable[[], httpx.AsyncClient]:
    """Returns the same pooled AsyncClient on every call, like the real client."""
    client = httpx.AsyncClient(transport=platform.transport())
    return lambda: client


@pytest.fixture
def client(platform) -> VectraSaaSClient:
    """A client with throttling disabled, talking to the fake platform."""
    return VectraSaaSClient(
        SITE,
        CLIENT_ID,
        SECRET,
        throttle_seconds=0,
        transport=platform.transport(),
    )


@pytest.fixture
def sample_detection_data():
    """Sample detection data from the API."""
    return {
        "id": 1042,
        "detection_type": "Suspicious Admin",
        "category": "LATERAL MOVEMENT",
        "state": "active",
        "threat": 60,
        "certainty": 80,
        "src_account": {"id": 77, "name": "O365:jdoe@example.com"},
        "tags": ["investigating"],
        "last_timestamp": "2024-01-16T14:20:00Z",
    }


@pytest.fixture
def sample_account_event():
    """Sample account scoring event."""
    return {
        "id": 9001,
        "account_id": 77,
        "account_uid": "jdoe@example.com",
        "threat": 45,
        "certainty": 70,
        "severity": "Medium",
        "event_timestamp": "2024-01-15T11:00:00Z",
    }
