"""
Vectra SaaS API Client

Asynchronous Python client for the Vectra SaaS REST API: accounts,
detections, notes, tags, triage rules, assignments, users and the
account/detection event streams.

Features:
- OAuth2 client-credentials auth with cached, auto-refreshed tokens
- Fixed-delay throttling
- Transparent pagination over list endpoints and event streams
- Normalized errors (ApiError / NetworkError / AuthError)

Quick Start:
    pip install vectra-saas-client

    async with VectraSaaSClient(site_url, client_id, secret) as client:
        detections = await client.get_all_detections({"state": "active"})
"""

from vectra_saas.client import VectraSaaSClient
from vectra_saas.auth import Credentials, Token, TokenManager
from vectra_saas.config import (
    ApiVariant,
    ClientSettings,
    VARIANTS,
    load_settings,
)
from vectra_saas.exceptions import (
    VectraSaaSError,
    AuthError,
    ApiError,
    NetworkError,
    ValidationError,
    PaginationError,
    UnexpectedResponseError,
)
from vectra_saas.gateway import ApiGateway
from vectra_saas.models import EventPage, Page, TagSet, TokenResponse
from vectra_saas.pagination import (
    iter_events,
    iter_pages,
    latest_checkpoint,
    walk_events,
    walk_pages,
)
from vectra_saas.throttle import FixedDelayThrottle

__version__ = "1.0.0"
__all__ = [
    # Main client
    "VectraSaaSClient",

    # Authentication
    "Credentials",
    "Token",
    "TokenManager",

    # Configuration
    "ApiVariant",
    "ClientSettings",
    "VARIANTS",
    "load_settings",

    # Errors
    "VectraSaaSError",
    "AuthError",
    "ApiError",
    "NetworkError",
    "ValidationError",
    "PaginationError",
    "UnexpectedResponseError",

    # Core engine
    "ApiGateway",
    "FixedDelayThrottle",
    "iter_events",
    "iter_pages",
    "latest_checkpoint",
    "walk_events",
    "walk_pages",

    # Models
    "EventPage",
    "Page",
    "TagSet",
    "TokenResponse",
]
