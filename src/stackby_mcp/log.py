# Stackby MCP Server
# File: log.py
# Version: v1

"""Logging setup shared by the entrypoints."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send logs to stderr; in stdio mode stdout carries JSON-RPC."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        stream=sys.stderr,
        format=LOG_FORMAT,
        force=True,
    )
    # httpx logs every request at INFO, including full URLs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
