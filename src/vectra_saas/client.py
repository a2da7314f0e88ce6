"""
Vectra SaaS API Client

Asynchronous client for the Vectra SaaS REST API with:
- OAuth2 client-credentials authentication with cached, auto-refreshed tokens
- Fixed-delay throttling of every call
- Connection pooling via httpx
- Structured logging
- Transparent pagination over list endpoints and event streams
"""

from typing import Any, Iterable, Mapping

import httpx
import structlog

from vectra_saas.auth import Credentials, TokenManager
from vectra_saas.config import (
    DEFAULT_THROTTLE_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    ApiVariant,
    ClientSettings,
    format_version,
)
from vectra_saas.exceptions import AuthError, ValidationError
from vectra_saas.gateway import USER_AGENT, ApiGateway
from vectra_saas.models import TagSet
from vectra_saas.pagination import latest_checkpoint, walk_events, walk_pages
from vectra_saas.query import with_query
from vectra_saas.throttle import FixedDelayThrottle

logger = structlog.get_logger(__name__)

ACCOUNT_EVENTS = "/events/account_scoring"
DETECTION_EVENTS = "/events/account_detection"

TAGGABLE = ("account", "detection", "host")
NOTABLE = {"account": "accounts", "detection": "detections", "host": "hosts"}


def _check_id(value: Any, name: str = "id") -> int:
    """Reject anything that is not a non-negative integer ID."""
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.isascii() and value.isdigit():
            return int(value)
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name} cannot be negative, got {value}")
    return value


def _check_ids(values: Iterable[Any], name: str = "ids") -> list[int]:
    if isinstance(values, (str, bytes)):
        raise ValidationError(f"{name} must be a list of integers")
    ids = [_check_id(v, name) for v in values]
    if not ids:
        raise ValidationError(f"{name} cannot be empty")
    return ids


def _check_checkpoint(value: Any) -> int:
    return _check_id(value, "checkpoint")


class VectraSaaSClient:
    """
    Vectra SaaS API client.

    Example:
        client = VectraSaaSClient(
            "https://000000000000.foo.portal.vectra.ai",
            client_id="your-client-id",
            secret="your-secret",
        )

        async with client:
            detections = await client.get_all_detections({"state": "active"})
            events = await client.get_detection_changes(checkpoint=0)
    """

    def __init__(
        self,
        site_url: str,
        client_id: str,
        secret: str,
        version: int | float | str = 3,
        *,
        variant: ApiVariant | None = None,
        throttle_seconds: float = DEFAULT_THROTTLE_SECONDS,
        token_margin_seconds: int | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            site_url: Where your SaaS brain lives, e.g.
                https://000000000000.foo.portal.vectra.ai
            client_id: OAuth client ID (Manage > API Clients)
            secret: OAuth secret (Manage > API Clients)
            version: API version, defaults to 3
            variant: Version-specific behaviour (checkpoint parameter, token margin)
            throttle_seconds: Fixed delay before every call
            token_margin_seconds: Overrides the variant's token safety margin
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.credentials = Credentials(site_url, client_id, secret)
        self.version = format_version(version)

        variant = variant or ApiVariant()
        if token_margin_seconds is not None:
            variant = variant.with_margin(token_margin_seconds)
        self.variant = variant

        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        self.token_manager = TokenManager(
            self.credentials,
            lambda: self.http,
            margin_seconds=variant.token_margin_seconds,
        )
        self.throttle = FixedDelayThrottle(delay_seconds=throttle_seconds)
        self.gateway = ApiGateway(
            self.credentials,
            self.version,
            self.token_manager,
            self.throttle,
            lambda: self.http,
        )

        self._log = logger.bind(site=self.credentials.site_url, version=self.version)

    @classmethod
    def from_settings(
        cls,
        settings: ClientSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "VectraSaaSClient":
        return cls(
            settings.site_url,
            settings.client_id,
            settings.secret.get_secret_value(),
            settings.version,
            variant=settings.api_variant(),
            throttle_seconds=settings.throttle_seconds,
            timeout=settings.timeout,
            transport=transport,
        )

    def _new_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        )

    async def __aenter__(self) -> "VectraSaaSClient":
        """Initialize HTTP client with connection pooling."""
        if self._client is None:
            self._client = self._new_http_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Clean up HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def http(self) -> httpx.AsyncClient:
        """Get HTTP client, creating if needed."""
        if self._client is None:
            self._client = self._new_http_client()
        return self._client

    # -------------------------------------------------------------------------
    # Event streams
    # -------------------------------------------------------------------------

    async def get_account_changes(self, checkpoint: int = 0) -> list[dict[str, Any]]:
        """All account scoring events since ``checkpoint`` (0 = beginning of history)."""
        return await walk_events(
            self.gateway, ACCOUNT_EVENTS, _check_checkpoint(checkpoint), self.variant
        )

    async def get_detection_changes(self, checkpoint: int = 0) -> list[dict[str, Any]]:
        """All account detection events since ``checkpoint``."""
        return await walk_events(
            self.gateway, DETECTION_EVENTS, _check_checkpoint(checkpoint), self.variant
        )

    async def get_latest_account_checkpoint(self) -> int | None:
        return await latest_checkpoint(self.gateway, ACCOUNT_EVENTS, self.variant)

    async def get_latest_detection_checkpoint(self) -> int | None:
        return await latest_checkpoint(self.gateway, DETECTION_EVENTS, self.variant)

    # -------------------------------------------------------------------------
    # Detections
    # -------------------------------------------------------------------------

    async def get_detection(self, detection_id: int) -> dict[str, Any]:
        return await self.gateway.fetch_json(f"/detections/{_check_id(detection_id)}")

    async def get_detections(self, detection_ids: Iterable[int]) -> list[dict[str, Any]]:
        """Fetch several detections by ID, following pagination."""
        ids = _check_ids(detection_ids)
        return await walk_pages(self.gateway, "/detections", {"id": ids}, start_page=False)

    async def get_all_detections(
        self, options: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """
        Fetch every detection matching ``options``.

        Options are passed through as query parameters, e.g.
        ``{"state": "active", "ordering": "-last_timestamp"}``.
        """
        return await walk_pages(self.gateway, "/detections", options)

    async def mark_as_fixed(self, detection_ids: Iterable[int]) -> Any:
        return await self.gateway.patch_json(
            "/detections",
            {"detectionIdList": _check_ids(detection_ids), "mark_as_fixed": "True"},
        )

    async def unmark_as_fixed(self, detection_ids: Iterable[int]) -> Any:
        return await self.gateway.patch_json(
            "/detections",
            {"detectionIdList": _check_ids(detection_ids), "mark_as_fixed": "False"},
        )

    async def filter_detections(self, detection_ids: Iterable[int], value: str) -> Any:
        """Filter detections under a new triage category."""
        return await self.gateway.create_json(
            "/rules",
            {"detectionIdList": _check_ids(detection_ids), "triage_category": value},
        )

    async def unfilter_detections(self, detection_ids: Iterable[int]) -> Any:
        return await self.gateway.remove_json(
            "/rules", {"detectionIdList": _check_ids(detection_ids)}
        )

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def get_account(self, account_id: int) -> dict[str, Any]:
        return await self.gateway.fetch_json(f"/accounts/{_check_id(account_id)}")

    async def get_accounts(self, account_ids: Iterable[int]) -> list[dict[str, Any]]:
        ids = _check_ids(account_ids)
        return await walk_pages(self.gateway, "/accounts", {"id": ids}, start_page=False)

    async def get_all_accounts(
        self, options: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        return await walk_pages(self.gateway, "/accounts", options)

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    def _notes_path(self, entity: str, entity_id: int, note_id: int | None = None) -> str:
        path = f"/{NOTABLE[entity]}/{_check_id(entity_id)}/notes"
        if note_id is not None:
            path += f"/{_check_id(note_id, 'note_id')}"
        return path

    async def _get_notes(self, entity: str, entity_id: int) -> Any:
        return await self.gateway.fetch_json(self._notes_path(entity, entity_id))

    async def _get_note(self, entity: str, entity_id: int, note_id: int) -> Any:
        return await self.gateway.fetch_json(self._notes_path(entity, entity_id, note_id))

    async def _add_note(self, entity: str, entity_id: int, note: str) -> Any:
        return await self.gateway.create_json(
            self._notes_path(entity, entity_id), {"note": note}
        )

    async def _update_note(self, entity: str, entity_id: int, note_id: int, note: str) -> Any:
        return await self.gateway.patch_json(
            self._notes_path(entity, entity_id, note_id), {"note": note}
        )

    async def _delete_note(self, entity: str, entity_id: int, note_id: int) -> Any:
        return await self.gateway.remove_json(self._notes_path(entity, entity_id, note_id))

    async def get_detection_notes(self, detection_id: int) -> Any:
        return await self._get_notes("detection", detection_id)

    async def get_detection_note(self, detection_id: int, note_id: int) -> Any:
        return await self._get_note("detection", detection_id, note_id)

    async def add_detection_note(self, detection_id: int, note: str) -> Any:
        return await self._add_note("detection", detection_id, note)

    async def update_detection_note(self, detection_id: int, note_id: int, note: str) -> Any:
        return await self._update_note("detection", detection_id, note_id, note)

    async def delete_detection_note(self, detection_id: int, note_id: int) -> Any:
        return await self._delete_note("detection", detection_id, note_id)

    async def get_account_notes(self, account_id: int) -> Any:
        return await self._get_notes("account", account_id)

    async def get_account_note(self, account_id: int, note_id: int) -> Any:
        return await self._get_note("account", account_id, note_id)

    async def add_account_note(self, account_id: int, note: str) -> Any:
        return await self._add_note("account", account_id, note)

    async def update_account_note(self, account_id: int, note_id: int, note: str) -> Any:
        return await self._update_note("account", account_id, note_id, note)

    async def delete_account_note(self, account_id: int, note_id: int) -> Any:
        return await self._delete_note("account", account_id, note_id)

    async def get_host_notes(self, host_id: int) -> Any:
        return await self._get_notes("host", host_id)

    async def get_host_note(self, host_id: int, note_id: int) -> Any:
        return await self._get_note("host", host_id, note_id)

    async def add_host_note(self, host_id: int, note: str) -> Any:
        return await self._add_note("host", host_id, note)

    async def update_host_note(self, host_id: int, note_id: int, note: str) -> Any:
        return await self._update_note("host", host_id, note_id, note)

    async def delete_host_note(self, host_id: int, note_id: int) -> Any:
        return await self._delete_note("host", host_id, note_id)

    # -------------------------------------------------------------------------
    # Tags
    #
    # Tag mutation is read-modify-write with no concurrency check on the
    # server: two concurrent writers on the same entity can lose updates.
    # -------------------------------------------------------------------------

    def _tags_path(self, entity: str, entity_id: int) -> str:
        if entity not in TAGGABLE:
            raise ValidationError(f"Cannot tag a {entity}")
        return f"/tagging/{entity}/{_check_id(entity_id)}"

    async def _get_tag_set(self, entity: str, entity_id: int) -> TagSet:
        path = self._tags_path(entity, entity_id)
        data = await self.gateway.fetch_json(path)
        return TagSet.from_response(data, source=path)

    async def _put_tag_set(self, entity: str, entity_id: int, tag_set: TagSet) -> Any:
        return await self.gateway.patch_json(
            self._tags_path(entity, entity_id), {"tags": tag_set.tags}
        )

    async def _add_tags(self, entity: str, entity_id: int, tags: Iterable[str]) -> Any:
        tags = list(tags)
        if not tags:
            raise ValidationError("tags cannot be empty")
        current = await self._get_tag_set(entity, entity_id)
        return await self._put_tag_set(entity, entity_id, current.with_added(tags))

    async def _delete_tag(self, entity: str, entity_id: int, tag: str) -> Any:
        current = await self._get_tag_set(entity, entity_id)
        return await self._put_tag_set(entity, entity_id, current.without(tag))

    async def _clear_tags(self, entity: str, entity_id: int) -> Any:
        return await self._put_tag_set(entity, entity_id, TagSet())

    async def get_detection_tags(self, detection_id: int) -> list[str]:
        return (await self._get_tag_set("detection", detection_id)).tags

    async def add_detection_tags(self, detection_id: int, tags: Iterable[str]) -> Any:
        return await self._add_tags("detection", detection_id, tags)

    async def delete_detection_tag(self, detection_id: int, tag: str) -> Any:
        return await self._delete_tag("detection", detection_id, tag)

    async def clear_detection_tags(self, detection_id: int) -> Any:
        return await self._clear_tags("detection", detection_id)

    async def get_account_tags(self, account_id: int) -> list[str]:
        return (await self._get_tag_set("account", account_id)).tags

    async def add_account_tags(self, account_id: int, tags: Iterable[str]) -> Any:
        return await self._add_tags("account", account_id, tags)

    async def delete_account_tag(self, account_id: int, tag: str) -> Any:
        return await self._delete_tag("account", account_id, tag)

    async def clear_account_tags(self, account_id: int) -> Any:
        return await self._clear_tags("account", account_id)

    async def get_host_tags(self, host_id: int) -> list[str]:
        return (await self._get_tag_set("host", host_id)).tags

    async def add_host_tags(self, host_id: int, tags: Iterable[str]) -> Any:
        return await self._add_tags("host", host_id, tags)

    async def delete_host_tag(self, host_id: int, tag: str) -> Any:
        return await self._delete_tag("host", host_id, tag)

    async def clear_host_tags(self, host_id: int) -> Any:
        return await self._clear_tags("host", host_id)

    # -------------------------------------------------------------------------
    # Triage rules
    # -------------------------------------------------------------------------

    async def get_triage_rules(self) -> Any:
        return await self.gateway.fetch_json("/rules")

    async def get_triage_rule(self, rule_id: int) -> Any:
        return await self.gateway.fetch_json(f"/rules/{_check_id(rule_id, 'rule_id')}")

    async def create_triage_rule(self, rule: Mapping[str, Any]) -> Any:
        return await self.gateway.create_json("/rules", dict(rule))

    async def update_triage_rule(self, rule_id: int, rule: Mapping[str, Any]) -> Any:
        return await self.gateway.replace_json(
            f"/rules/{_check_id(rule_id, 'rule_id')}", dict(rule)
        )

    async def delete_triage_rule(self, rule_id: int) -> Any:
        return await self.gateway.remove_json(f"/rules/{_check_id(rule_id, 'rule_id')}")

    # -------------------------------------------------------------------------
    # Assignments
    # -------------------------------------------------------------------------

    async def get_assignments(self) -> list[dict[str, Any]]:
        return await walk_pages(self.gateway, "/assignments", start_page=False)

    async def get_assignment(self, assignment_id: int) -> Any:
        return await self.gateway.fetch_json(
            f"/assignments/{_check_id(assignment_id, 'assignment_id')}"
        )

    async def get_account_assignment(self, account_id: int, resolved: bool = False) -> Any:
        return await self.gateway.fetch_json(
            with_query("/assignments", {"accounts": _check_id(account_id), "resolved": resolved})
        )

    async def get_host_assignment(self, host_id: int, resolved: bool = False) -> Any:
        return await self.gateway.fetch_json(
            with_query("/assignments", {"hosts": _check_id(host_id), "resolved": resolved})
        )

    async def resolve_assignment(self, assignment_id: int, outcome_id: int | str) -> Any:
        """
        Resolve an assignment.

        Outcomes: "1" benign true positive, "2" malicious true positive,
        "3" false positive.
        """
        return await self.gateway.replace_json(
            f"/assignments/{_check_id(assignment_id, 'assignment_id')}/resolve",
            {"outcome": str(outcome_id)},
        )

    async def assign_account(self, account_id: int, user_id: int) -> Any:
        return await self.gateway.create_json(
            "/assignments",
            {
                "assign_account_id": _check_id(account_id),
                "assign_to_user_id": _check_id(user_id, "user_id"),
            },
        )

    async def assign_host(self, host_id: int, user_id: int) -> Any:
        return await self.gateway.create_json(
            "/assignments",
            {
                "assign_host_id": _check_id(host_id),
                "assign_to_user_id": _check_id(user_id, "user_id"),
            },
        )

    async def modify_assignment(self, assignment_id: int, account_id: int, user_id: int) -> Any:
        return await self.gateway.replace_json(
            f"/assignments/{_check_id(assignment_id, 'assignment_id')}",
            {
                "assign_account_id": _check_id(account_id),
                "assign_to_user_id": _check_id(user_id, "user_id"),
            },
        )

    async def remove_assignment(self, assignment_id: int) -> Any:
        return await self.gateway.remove_json(
            f"/assignments/{_check_id(assignment_id, 'assignment_id')}"
        )

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def get_users(self) -> list[dict[str, Any]]:
        return await walk_pages(self.gateway, "/users", start_page=False)

    async def get_user(self, user_id: int) -> Any:
        return await self.gateway.fetch_json(f"/users/{_check_id(user_id, 'user_id')}")

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Get client statistics for monitoring."""
        return {
            "site": self.credentials.site_url,
            "version": self.version,
            "variant": self.variant.name,
            **self.gateway.get_stats(),
        }

    async def health_check(self) -> dict[str, Any]:
        """Verify credentials by forcing a token exchange."""
        self.token_manager.invalidate()
        try:
            await self.token_manager.ensure_valid()
            return {"status": "healthy", "site": self.credentials.site_url}
        except AuthError as e:
            self._log.warning("Health check failed", status_code=e.status_code)
            return {"status": "auth_error", "message": str(e)}
