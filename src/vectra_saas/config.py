"""
Client configuration.

Two concerns live here:

- ``ApiVariant``: the per-deployment differences between API versions
  (path version, checkpoint query parameter, token safety margin).
- ``ClientSettings`` / ``load_settings``: connection settings loaded from
  a JSON config file with environment variable overrides.
"""

import json
import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator

from vectra_saas.exceptions import ValidationError

DEFAULT_TOKEN_MARGIN_SECONDS = 100
DEFAULT_THROTTLE_SECONDS = 0.5
DEFAULT_TIMEOUT_SECONDS = 30.0

# Beyond any real checkpoint; makes the server report its head position.
PROBE_CHECKPOINT = 999_999_999_999


@dataclass(frozen=True)
class ApiVariant:
    """Version-specific behaviour, selected once at construction."""

    name: str = "v3"
    checkpoint_param: str = "from"
    token_margin_seconds: int = DEFAULT_TOKEN_MARGIN_SECONDS
    event_page_limit: int = 1000
    probe_checkpoint: int = PROBE_CHECKPOINT

    def __post_init__(self) -> None:
        if self.checkpoint_param not in ("from", "since"):
            raise ValidationError(
                f"checkpoint_param must be 'from' or 'since', got {self.checkpoint_param!r}"
            )
        if self.token_margin_seconds < 0:
            raise ValidationError("token_margin_seconds cannot be negative")
        if self.event_page_limit <= 0:
            raise ValidationError("event_page_limit must be positive")

    def with_margin(self, token_margin_seconds: int) -> "ApiVariant":
        return replace(self, token_margin_seconds=token_margin_seconds)


VARIANTS: dict[str, ApiVariant] = {
    "v3": ApiVariant(),
    "v3-since": ApiVariant(name="v3-since", checkpoint_param="since", token_margin_seconds=0),
}


def get_variant(name: str) -> ApiVariant:
    try:
        return VARIANTS[name]
    except KeyError:
        raise ValidationError(
            f"Unknown API variant '{name}'. Known: {', '.join(sorted(VARIANTS))}"
        ) from None


def normalize_site_url(url: str) -> str:
    """Force an https scheme and drop trailing slashes."""
    if not url or not url.strip():
        raise ValidationError("site_url is required")
    url = url.strip()
    if "://" not in url:
        url = "https://" + url
    return url.rstrip("/")


def format_version(version: int | float | str) -> str:
    """3 -> 'v3', '3.3' -> 'v3.3', 'v3' -> 'v3'."""
    text = str(version).strip()
    if text.startswith("v"):
        text = text[1:]
    if not re.fullmatch(r"\d+(\.\d+)?", text):
        raise ValidationError(f"Invalid API version {version!r}")
    return f"v{text}"


class ClientSettings(BaseModel):
    """Connection settings for a VectraSaaSClient."""

    site_url: str
    client_id: str
    secret: SecretStr
    version: str = "3"
    variant: str = "v3"
    throttle_seconds: float = Field(DEFAULT_THROTTLE_SECONDS, ge=0)
    token_margin_seconds: int | None = Field(None, ge=0)
    timeout: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)

    @field_validator("site_url")
    @classmethod
    def normalize_url(cls, v: str) -> str:
        return normalize_site_url(v)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> str:
        return str(v)

    @field_validator("client_id")
    @classmethod
    def require_client_id(cls, v: str) -> str:
        if not v:
            raise ValueError("client_id is required")
        return v

    def api_variant(self) -> ApiVariant:
        variant = get_variant(self.variant)
        if self.token_margin_seconds is not None:
            variant = variant.with_margin(self.token_margin_seconds)
        return variant


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".vectra-saas" / "config.json"


ENV_MAPPINGS = {
    "site_url": "VECTRA_SITE_URL",
    "client_id": "VECTRA_CLIENT_ID",
    "secret": "VECTRA_SECRET",
    "version": "VECTRA_API_VERSION",
    "variant": "VECTRA_API_VARIANT",
    "throttle_seconds": "VECTRA_THROTTLE_SECONDS",
    "token_margin_seconds": "VECTRA_TOKEN_MARGIN",
    "timeout": "VECTRA_TIMEOUT",
}


def load_settings(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> ClientSettings:
    """
    Load settings from a config file, with environment variable overrides.

    Priority:
    1. Environment variables
    2. Config file values
    """
    config: dict[str, Any] = {}
    env = os.environ if environ is None else environ

    config_path = Path(path) if path is not None else get_config_path()
    if config_path.exists():
        with open(config_path) as f:
            config = json.load(f)

    for config_key, env_var in ENV_MAPPINGS.items():
        env_value = env.get(env_var)
        if env_value is not None and env_value != "":
            config[config_key] = env_value

    return ClientSettings.model_validate(config)
