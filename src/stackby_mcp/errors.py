# Stackby MCP Server
# File: errors.py
# Version: v1

"""Exceptions raised by the Stackby client and tool layer."""

from __future__ import annotations

from typing import Optional


class StackbyError(RuntimeError):
    """Base class for every error the tool layer turns into an error result."""


class MissingCredentialsError(StackbyError):
    """No API key is available from the request or the process config."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or (
                "STACKBY_API_KEY is not set. Set it in your MCP config "
                "(e.g. the env block of your client's mcp.json) or send header "
                "X-Stackby-API-Key (hosted)."
            )
        )


class StackbyValidationError(StackbyError, ValueError):
    """Input rejected locally, before any request is sent."""


class StackbyAPIError(StackbyError):
    """The Stackby API answered with a non-success status or was unreachable.

    ``status_code`` is None when the request never produced a response
    (DNS failure, connection refused, timeout...).
    """

    def __init__(self, status_code: Optional[int], detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            message = f"Stackby API request failed: {detail}"
        else:
            message = f"Stackby API {status_code}: {detail}"
        super().__init__(message)
