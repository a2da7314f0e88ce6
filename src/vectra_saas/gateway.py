"""
HTTP verb gateway.

Every outbound API call goes through ``ApiGateway._request``:

1. TokenManager.ensure_valid()
2. FixedDelayThrottle.wait()
3. one request to ``{site}/api/{version}{path}`` with the bearer header

Failures are normalized before they reach callers: a non-2xx response
becomes ``ApiError(status, status_text, url)``, a request that never got a
response becomes ``NetworkError``. No call is retried.
"""

import time
from typing import Any, Callable

import httpx
import structlog

from vectra_saas.auth import Credentials, TokenManager
from vectra_saas.exceptions import ApiError, NetworkError
from vectra_saas.throttle import FixedDelayThrottle

logger = structlog.get_logger(__name__)

USER_AGENT = "vectra-saas-client/1.0"


class ApiGateway:
    """
    Authenticated, throttled access to the REST API.

    Example:
        gateway = ApiGateway(credentials, "v3", token_manager, throttle, http)
        detection = await gateway.fetch_json("/detections/42")
    """

    def __init__(
        self,
        credentials: Credentials,
        version: str,
        token_manager: TokenManager,
        throttle: FixedDelayThrottle,
        http_client: Callable[[], httpx.AsyncClient],
    ):
        self.credentials = credentials
        self.version = version
        self.token_manager = token_manager
        self.throttle = throttle
        self._http_client = http_client

        # Request counters for observability
        self._request_count = 0
        self._error_count = 0

        self._log = logger.bind(site=credentials.site_url)

    @property
    def api_base(self) -> str:
        return f"{self.credentials.site_url}/api/{self.version}"

    def url_for(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.api_base}{path}"

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        """
        Make an authenticated, throttled request and return the parsed body.

        Raises:
            AuthError: If a token could not be obtained
            ApiError: On a non-2xx response
            NetworkError: If no response was received
        """
        token = await self.token_manager.ensure_valid()
        await self.throttle.wait()

        url = self.url_for(path)
        log = self._log.bind(method=method, path=path)

        self._request_count += 1
        request_id = self._request_count

        log.debug("API request", request_id=request_id)

        start_time = time.monotonic()
        try:
            response = await self._http_client().request(
                method,
                url,
                json=body,
                headers={"Authorization": f"Bearer {token.value}"},
            )
        except httpx.TransportError as e:
            self._error_count += 1
            log.warning("API request failed", request_id=request_id, error=type(e).__name__)
            raise NetworkError(f"{method} {url} failed: {e}", original=e) from e
        elapsed = time.monotonic() - start_time

        log.debug(
            "API response",
            request_id=request_id,
            status_code=response.status_code,
            elapsed_ms=round(elapsed * 1000),
        )

        if not response.is_success:
            self._error_count += 1
            if response.status_code == 401:
                # Server no longer accepts the token; force a fresh exchange next call.
                self.token_manager.invalidate(token)
            raise ApiError(
                status=response.status_code,
                status_text=response.reason_phrase,
                url=str(response.request.url),
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def fetch_json(self, path: str) -> Any:
        return await self._request("GET", path)

    async def create_json(self, path: str, body: Any) -> Any:
        return await self._request("POST", path, body)

    async def patch_json(self, path: str, body: Any) -> Any:
        return await self._request("PATCH", path, body)

    async def replace_json(self, path: str, body: Any) -> Any:
        return await self._request("PUT", path, body)

    async def remove_json(self, path: str, body: Any = None) -> Any:
        return await self._request("DELETE", path, body)

    def get_stats(self) -> dict[str, Any]:
        """Get gateway statistics for monitoring."""
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": round(self._error_count / max(1, self._request_count), 4),
            "token_exchanges": self.token_manager.exchange_count,
            "throttle": self.throttle.get_stats(),
        }
