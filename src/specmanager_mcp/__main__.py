"""Command-line entry point for the SpecManager MCP server.

stdio is the default transport; ``--http`` serves many sessions over
streamable HTTP instead.  Logs always go to stderr because stdout carries the
stdio protocol stream.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from specmanager_mcp import __version__
from specmanager_mcp.config import ServerConfig
from specmanager_mcp.errors import SpecManagerError
from specmanager_mcp.launcher import LifecycleController, TransportAdapter
from specmanager_mcp.mcp_utils.debug_logger import DebugLogger

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="specmanager-mcp",
        description="SpecManager MCP server: task management tools for AI agents over stdio or streamable HTTP",
    )
    parser.add_argument(
        "--http",
        action="store_true",
        default=False,
        help="Serve multiple sessions over streamable HTTP instead of stdio",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        metavar="HOST",
        help="HTTP bind address (default: 0.0.0.0 or HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        metavar="PORT",
        help="HTTP port (default: 3000 or PORT)",
    )
    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        metavar="URL",
        help="SpecManager API base URL (default: https://api.specmanager.ai or SPECMANAGER_API_URL)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Trace tool execution and session events (or set SPECMANAGER_DEBUG)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        stream=sys.stderr,
        format=LOG_FORMAT,
    )


def create_adapter(config: ServerConfig, use_http: bool) -> TransportAdapter:
    """Build the transport adapter; raises SpecManagerError on missing configuration."""
    if use_http:
        from specmanager_mcp.mcp_server.http_transport import HttpGateway

        return HttpGateway(config)

    from specmanager_mcp.mcp_server.stdio_transport import StdioGateway

    return StdioGateway(config)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the specmanager-mcp command."""
    args = build_parser().parse_args(argv)

    load_dotenv()
    configure_logging(args.verbose)

    try:
        config = ServerConfig.from_env(
            host=args.host,
            port=args.port,
            api_url=args.api_url,
            debug=True if args.debug else None,
        )
        DebugLogger.set_debug_enabled(config.debug)
        adapter = create_adapter(config, args.http)
    except SpecManagerError as e:
        sys.stderr.write(f"{e.format()}\n")
        sys.exit(1)
    except ValidationError as e:
        sys.stderr.write(f"Configuration error: {e}\n")
        sys.exit(1)

    try:
        exit_code = asyncio.run(LifecycleController(adapter).run())
    except KeyboardInterrupt:
        sys.stderr.write("\nShutdown complete\n")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
