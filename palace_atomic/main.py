"""
Main entry point for Palace Atomic MCP Server.

This module provides the main() function and server initialization.
"""

import argparse
import asyncio
from pathlib import Path

from mcp.server.stdio import stdio_server

from .config import settings
from .logging import configure_logging, get_logger
from .tools import server


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="palace-atomic", description="Atomic note MCP server (stdio)")
    parser.add_argument("--vault", type=Path, help="Vault root (overrides PALACE_VAULT_PATH)")
    parser.add_argument("--log-level", help="Log level name (overrides PALACE_LOG_LEVEL)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    """Main entry point."""
    args = parse_args(argv)
    if args.vault:
        settings.vault_path = args.vault.expanduser()
    configure_logging(args.log_level)

    get_logger(__name__).info("server_starting", vault=str(settings.vault_path))

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()
