"""
Query-string construction and "next" URL handling.

All query strings the client sends go through ``encode_query`` so keys
and values are percent-encoded in one place.
"""

import re
from typing import Any, Mapping
from urllib.parse import quote, urlsplit

# Everything up to and including "/api/v3" or "/api/v3.3", so a site
# served under a path prefix ("https://host/brain") is stripped too.
API_PREFIX_PATTERN = re.compile(r"^.*?/api/v\d+(?:\.\d+)?(?=/|$)")


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(_render(v) for v in value)
    return str(value)


def encode_query(params: Mapping[str, Any] | None) -> str:
    """
    Percent-encode and join query parameters.

    ``None`` values are dropped, booleans become ``true``/``false`` and
    sequences are joined with commas. An empty mapping gives ``""``.
    """
    if not params:
        return ""
    parts = []
    for key, value in params.items():
        if value is None:
            continue
        parts.append(f"{quote(str(key), safe='')}={quote(_render(value), safe=',')}")
    return "&".join(parts)


def with_query(path: str, params: Mapping[str, Any] | None) -> str:
    """Append encoded params to a path, adding a separator only when needed."""
    query = encode_query(params)
    if not query:
        return path
    separator = "&" if "?" in path else "?"
    return f"{path}{separator}{query}"


def relative_path(next_url: str) -> str:
    """
    Reduce a server-supplied "next" URL to a gateway-relative path.

    Servers return fully-qualified URLs such as
    ``https://x.portal.vectra.ai/api/v3/detections?page=2``; the gateway
    expects ``/detections?page=2``.
    """
    parts = urlsplit(next_url)
    path = API_PREFIX_PATTERN.sub("", parts.path, count=1) or "/"
    if not path.startswith("/"):
        path = "/" + path
    if parts.query:
        return f"{path}?{parts.query}"
    return path
