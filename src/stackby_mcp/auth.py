# Stackby MCP Server
# File: auth.py
# Version: v1

"""Credential resolution and auth headers for the Stackby API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .config import StackbyConfig
from .context import RequestContext
from .errors import MissingCredentialsError

# Personal Access Tokens are recognised by this prefix and additionally
# sent as a bearer token.
PAT_PREFIX = "pat_"


@dataclass(frozen=True)
class Credentials:
    """Effective API key and base URL for one tool call."""

    api_key: str
    base_url: str


def resolve_credentials(
    config: StackbyConfig,
    request_context: Optional[RequestContext] = None,
) -> Credentials:
    """Pick the credentials for a call.

    A request context (HTTP mode) wins over the process config (stdio mode),
    for the key and the base URL independently.
    """
    api_key = ""
    base_url = ""
    if request_context is not None:
        api_key = (request_context.api_key or "").strip()
        base_url = (request_context.api_url or "").strip()

    if not api_key:
        api_key = (config.api_key or "").strip()
    if not base_url:
        base_url = config.base_url()

    if not api_key:
        raise MissingCredentialsError()

    return Credentials(api_key=api_key, base_url=base_url.rstrip("/"))


def auth_headers(api_key: str) -> Dict[str, str]:
    """Headers sent with every Stackby API request."""
    if not api_key:
        raise MissingCredentialsError()

    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "x-api-key": api_key,
    }
    if api_key.startswith(PAT_PREFIX):
        headers["Authorization"] = f"Bearer {api_key}"
    return headers
