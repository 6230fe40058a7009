# Stackby MCP Server
# File: transports/stdio_server.py
# Version: v1

"""STDIO entrypoint for the Stackby MCP server.

This is the script behind the ``stackby-mcp`` console command.

It:

- reads configuration (API key, optional base URL) once from the environment,
- creates a FastMCP server,
- registers all Stackby tools with that configuration, and
- runs the built-in stdio transport.
"""

from __future__ import annotations

import logging

from mcp.server.fastmcp import FastMCP

from ..config import StackbyConfig
from ..log import configure_logging
from ..tools import tasks

logger = logging.getLogger(__name__)


def create_server(config: StackbyConfig) -> FastMCP:
    mcp = FastMCP("stackby-mcp-server")
    tasks.register_tools(mcp, config)
    return mcp


def main() -> None:
    """Synchronous entrypoint for console_scripts."""
    config = StackbyConfig.from_env()
    configure_logging(config.log_level)

    if not config.api_key:
        # Tools still start and answer with setup guidance.
        logger.warning("STACKBY_API_KEY is not set; tool calls will fail until it is.")

    mcp = create_server(config)

    # Let FastMCP handle stdio + event loop setup.
    mcp.run()


if __name__ == "__main__":
    main()
