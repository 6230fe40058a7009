# Stackby MCP Server
# File: scripts/list_workspaces.py
# Version: v1
"""
One-off helper: list workspaces for the configured Stackby account.

Run with STACKBY_API_KEY (or a PAT) set:
  stackby-list-workspaces
"""

from __future__ import annotations

import asyncio
import sys

from ..auth import resolve_credentials
from ..client import StackbyClient
from ..config import StackbyConfig
from ..errors import MissingCredentialsError, StackbyError


async def run(config: StackbyConfig) -> int:
    try:
        credentials = resolve_credentials(config)
    except MissingCredentialsError:
        print(
            "STACKBY_API_KEY is not set. Set it in your environment or MCP config.",
            file=sys.stderr,
        )
        return 1

    client = StackbyClient(credentials=credentials, config=config)
    try:
        workspaces = await client.get_workspaces()
    except StackbyError as exc:
        print(f"Failed to list workspaces: {exc}", file=sys.stderr)
        return 1

    print(f"API: {credentials.base_url}")
    print(f"Workspaces ({len(workspaces)}):")
    if not workspaces:
        print("  No workspaces found.")
    for w in workspaces:
        print(f"  - {w.name} (id: {w.id})")
    return 0


def main() -> None:
    sys.exit(asyncio.run(run(StackbyConfig.from_env())))


if __name__ == "__main__":
    main()
