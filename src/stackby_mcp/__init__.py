# Stackby MCP Server
# File: __init__.py
# Version: v1

"""Stackby MCP Server: Stackby workspaces, stacks, tables and rows as MCP tools."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from .config import StackbyConfig
from .context import RequestContext

__all__ = ["RequestContext", "StackbyConfig", "__version__"]

DIST_NAME = "stackby-mcp-server"


def _resolve_version() -> str:
    # Metadata is missing when the source tree is imported without installing.
    try:
        return version(DIST_NAME)
    except PackageNotFoundError:
        return "0.1.0"


__version__ = _resolve_version()
