#!/usr/bin/env python3
"""VidHub CLI: run the API server and manage stored configuration."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config.settings import Settings, setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vidhub", description="VidHub backend CLI")
    parser.add_argument("--log-level", dest="log_level", help="Override LOG_LEVEL (DEBUG, INFO, ...)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: API_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: API_PORT)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    # SUPPRESS keeps a top-level --log-level from being reset by the subparser default
    serve_parser.add_argument(
        "--log-level", dest="log_level", default=argparse.SUPPRESS, help="Server log level"
    )

    db_parser = subparsers.add_parser("db", help="Configuration storage")
    db_subparsers = db_parser.add_subparsers(dest="db_action")
    db_subparsers.add_parser("init", help="Connect to the configured backend and create the table")
    show_parser = db_subparsers.add_parser("show", help="Print the current configuration")
    show_parser.add_argument(
        "--public", action="store_true", help="Omit the login password, as served to browsers"
    )
    set_parser = db_subparsers.add_parser("set", help="Replace the configuration from a JSON file")
    set_parser.add_argument("file", help="Path to a configuration JSON file")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, with_request_id=args.command == "serve")

    if args.command == "serve":
        from .commands.api import run_api_server

        host = args.host or Settings.API_HOST
        port = args.port or Settings.API_PORT
        log_level = (args.log_level or Settings.LOG_LEVEL or "info").lower()
        if log_level not in {"critical", "error", "warning", "info", "debug", "trace"}:
            log_level = "info"
        return await run_api_server(host, port, reload=args.reload, log_level=log_level)

    if args.command == "db":
        from .commands.database import (
            init_database_command,
            set_config_command,
            show_config_command,
        )

        if args.db_action == "init":
            return await init_database_command()
        if args.db_action == "show":
            return await show_config_command(public=args.public)
        if args.db_action == "set":
            return await set_config_command(args.file)
        print("Specify a db action: init, show or set", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


def app() -> None:
    """Entry point for the CLI application."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        print(f"❌ Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    app()
