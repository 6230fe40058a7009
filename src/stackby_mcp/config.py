# Stackby MCP Server
# File: config.py
# Version: v1

"""Configuration loading for the Stackby MCP Server."""

from __future__ import annotations

from dataclasses import dataclass
import os

DEFAULT_API_URL = "https://stackby.com"
DEFAULT_API_PREFIX = "/api/v1/mcp"


def _parse_bool_env(name: str, default: bool = False) -> bool:
    """Parse a boolean-like environment variable.

    Accepts 1/0, true/false, yes/no, on/off (case-insensitive).
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _parse_int_env(
    name: str,
    default: int,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    """Parse an int environment variable with clamping and safe fallback."""
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        value = int(default)
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            value = int(default)

    if min_value is not None and value < min_value:
        value = min_value
    if max_value is not None and value > max_value:
        value = max_value

    return value


def _parse_str_env(name: str) -> str | None:
    """Return a stripped env value, or None when unset or blank."""
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    return value or None


@dataclass
class StackbyConfig:
    """Process-wide settings, built once at startup and passed down explicitly.

    In stdio mode ``api_key`` / ``api_url`` are the credentials used for every
    call. In HTTP mode they only act as the fallback when an inbound request
    does not carry its own values.
    """

    api_key: str | None = None
    api_url: str = DEFAULT_API_URL

    # Path prefix of the remote MCP API; every client route hangs off it.
    api_prefix: str = DEFAULT_API_PREFIX

    timeout_seconds: int = 30
    verify_tls: bool = True

    # HTTP transport
    host: str = "0.0.0.0"
    port: int = 3001

    log_level: str = "INFO"

    def base_url(self) -> str:
        return self.api_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "StackbyConfig":
        """Create configuration from environment variables."""
        api_key = _parse_str_env("STACKBY_API_KEY")
        api_url = _parse_str_env("STACKBY_API_URL") or DEFAULT_API_URL

        api_prefix = _parse_str_env("STACKBY_API_PREFIX") or DEFAULT_API_PREFIX
        if not api_prefix.startswith("/"):
            api_prefix = f"/{api_prefix}"

        timeout_seconds = _parse_int_env(
            "STACKBY_HTTP_TIMEOUT", default=30, min_value=1, max_value=600
        )
        verify_tls = _parse_bool_env("STACKBY_VERIFY_TLS", default=True)

        host = _parse_str_env("STACKBY_MCP_HOST") or "0.0.0.0"
        port = _parse_int_env("PORT", default=3001, min_value=1, max_value=65535)

        log_level = (_parse_str_env("STACKBY_LOG_LEVEL") or "INFO").upper()

        return cls(
            api_key=api_key,
            api_url=api_url.rstrip("/"),
            api_prefix=api_prefix.rstrip("/"),
            timeout_seconds=timeout_seconds,
            verify_tls=verify_tls,
            host=host,
            port=port,
            log_level=log_level,
        )
