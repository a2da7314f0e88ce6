"""
Pydantic models for Vectra SaaS API envelopes.

Only the envelopes the client needs to drive token handling, pagination
and event streams are modelled. Record bodies (detections, accounts,
events) are kept as plain dicts and passed through untouched.
"""

from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from vectra_saas.exceptions import UnexpectedResponseError

M = TypeVar("M", bound=BaseModel)


def parse_response(model: type[M], data: Any, source: str) -> M:
    """
    Validate a response body against an envelope model.

    Raises:
        UnexpectedResponseError: If the body is not the expected shape
    """
    try:
        return model.model_validate({} if data is None else data)
    except pydantic.ValidationError as e:
        raise UnexpectedResponseError(
            f"Unexpected {model.__name__} body from {source}: {e.error_count()} error(s)"
        ) from e


class TokenResponse(BaseModel):
    """Response from POST /oauth2/token."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    expires_in: int
    token_type: str | None = None

    @field_validator("access_token")
    @classmethod
    def non_empty_token(cls, v: str) -> str:
        if not v:
            raise ValueError("access_token is empty")
        return v


class Page(BaseModel):
    """One page of a cursor-paginated list endpoint."""

    model_config = ConfigDict(extra="ignore")

    count: int | None = None
    next: str | None = None
    previous: str | None = None
    results: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("results", mode="before")
    @classmethod
    def null_results(cls, v: Any) -> Any:
        return [] if v is None else v


class EventPage(BaseModel):
    """One page of an event-stream endpoint."""

    model_config = ConfigDict(extra="ignore")

    events: list[dict[str, Any]] = Field(default_factory=list)
    remaining_count: int = 0
    next_checkpoint: int | None = None

    @field_validator("events", mode="before")
    @classmethod
    def null_events(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def exhausted(self) -> bool:
        return self.remaining_count <= 0


class TagSet(BaseModel):
    """Tags attached to an account, detection or host."""

    model_config = ConfigDict(extra="ignore")

    tags: list[str] = Field(default_factory=list)

    @classmethod
    def from_response(cls, data: Any, source: str = "tagging") -> "TagSet":
        """
        Build a tag set from either response shape.

        Some deployments return ``{"tags": [...]}``, others a bare list.
        """
        if isinstance(data, list):
            data = {"tags": data}
        return parse_response(cls, data, source)

    def with_added(self, tags: list[str]) -> "TagSet":
        return TagSet(tags=list(tags) + self.tags)

    def without(self, tag: str) -> "TagSet":
        return TagSet(tags=[t for t in self.tags if t != tag])
