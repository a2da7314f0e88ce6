"""
Exception types for the Vectra SaaS client.

Callers can tell apart failures during authentication, failures reported
by the API, and failures where no response was received at all.
"""

from typing import Any


class VectraSaaSError(Exception):
    """Base exception for all client errors."""


class AuthError(VectraSaaSError):
    """Raised when the OAuth2 token exchange fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code:
            return f"{base} (HTTP {self.status_code})"
        return base


class ApiError(VectraSaaSError):
    """
    Raised when the API answers with a non-2xx status.

    Carries exactly the status code, the status text and the request URL,
    never the transport library's own error object.
    """

    def __init__(self, status: int, status_text: str, url: str):
        super().__init__(f"{status} {status_text}: {url}")
        self.status = status
        self.status_text = status_text
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "statusText": self.status_text, "url": self.url}


class NetworkError(VectraSaaSError):
    """Raised when no response was received (DNS, refused connection, timeout)."""

    def __init__(self, message: str, original: BaseException | None = None):
        super().__init__(message)
        self.original = original


class ValidationError(VectraSaaSError, ValueError):
    """Raised when a caller passes malformed input."""


class PaginationError(VectraSaaSError):
    """Raised when the server hands back a cursor that would never terminate."""


class UnexpectedResponseError(VectraSaaSError):
    """Raised when a 2xx body does not have the envelope the endpoint promises."""
