# Stackby MCP Server
# File: context.py
# Version: v1

"""Per-request credentials for the hosted (HTTP) transport.

Each inbound HTTP request carries its caller's API key in headers. The
values are read into a ``RequestContext`` by whoever handles that request
and handed down as an argument; nothing here is stored globally, so two
requests in flight at the same time can never see each other's key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

API_KEY_HEADER = "x-stackby-api-key"
API_URL_HEADER = "x-stackby-api-url"


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    # Starlette Headers are case-insensitive; plain dicts are not.
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                value = candidate
                break
    if value is None:
        return None
    value = value.strip()
    return value or None


def api_key_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    """Return the API key from ``X-Stackby-API-Key`` or a bearer token."""
    key = _header(headers, API_KEY_HEADER)
    if key:
        return key

    auth = _header(headers, "authorization")
    if auth and auth.startswith("Bearer "):
        return auth[len("Bearer "):].strip() or None
    return None


@dataclass(frozen=True)
class RequestContext:
    """Credentials supplied by a single inbound HTTP request."""

    api_key: str
    api_url: Optional[str] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional["RequestContext"]:
        """Build a context from request headers, or None if no key was sent."""
        api_key = api_key_from_headers(headers)
        if not api_key:
            return None
        return cls(api_key=api_key, api_url=_header(headers, API_URL_HEADER))
