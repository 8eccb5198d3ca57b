#!/usr/bin/env python3
"""
Swaggbot Server - Entry Point

This is the main entry point for the server.
Supports both stdio and streamable-http transports.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add app directory to path for imports when running directly
APP_DIR = Path(__file__).parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import pydantic
import uvicorn

from swaggbot import __version__
from swaggbot.config import load_config
from swaggbot.server import create_http_app, create_server, run_stdio
from swaggbot.utils.logging import get_logger, setup_logging

logger = get_logger("swaggbot.main")


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Swaggbot - safe execution of generated API calls and workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with stdio transport (local MCP client)
  python main.py --transport stdio

  # Start with HTTP transport
  python main.py --transport streamable-http --port 8080

  # Use custom config directory
  python main.py --config-dir /path/to/config
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"swaggbot {__version__}",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Configuration directory path (default: ~/.swaggbot/)",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http"],
        help="Transport protocol (overrides config)",
    )
    parser.add_argument(
        "--host",
        type=str,
        help="Host to bind to (for HTTP transport, overrides config)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (for HTTP transport, overrides config)",
    )
    return parser.parse_args()


def main() -> int:
    """Main entry point."""
    args = parse_args()

    # Load configuration
    try:
        config = load_config(args.config_dir)
    except (pydantic.ValidationError, OSError, ValueError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1

    # Apply CLI overrides
    if args.transport:
        config.server.transport = args.transport
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    setup_logging(config.server.log_level.upper())

    bundle = create_server(config)
    logger.info("Starting Swaggbot v%s (transport=%s)", __version__, config.server.transport)

    try:
        if config.server.transport == "stdio":
            asyncio.run(run_stdio(bundle))
        else:
            logger.info("Running on http://%s:%d", config.server.host, config.server.port)
            uvicorn.run(
                create_http_app(bundle),
                host=config.server.host,
                port=config.server.port,
                log_level=config.server.log_level,
            )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return 0
    except Exception:
        logger.exception("Server error")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
