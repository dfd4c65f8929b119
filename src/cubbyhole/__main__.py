"""
=============================================================================
CUBBYHOLE SERVER CLI ENTRY POINT
=============================================================================

    # Listen on the default port (4242) on all interfaces
    python -m cubbyhole

    # Custom port
    python -m cubbyhole 5000

    # Localhost only, verbose
    python -m cubbyhole 5000 --host 127.0.0.1 --log-level DEBUG

Then talk to it with any line-based client:

    telnet localhost 5000
    nc -C localhost 5000

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .config import ServerConfig
from .exceptions import ConfigError, CubbyholeError
from .server import CubbyholeServer


logger = logging.getLogger("cubbyhole")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cubbyhole",
        description="Spawns a server capable of interpreting cubbyhole commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cubbyhole                        # Default port 4242
  python -m cubbyhole 5000                   # Custom port
  python -m cubbyhole 5000 --host 127.0.0.1  # Localhost only
  python -m cubbyhole --max-connections 50   # Limit open sessions
        """
    )

    parser.add_argument(
        "port",
        nargs="?",
        type=int,
        default=None,
        help="Port to listen on (default: $CUBBYHOLE_PORT or 4242)"
    )

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: $CUBBYHOLE_HOST or 0.0.0.0)"
    )

    parser.add_argument(
        "--max-connections", "-m",
        type=int,
        default=None,
        help="Maximum simultaneous clients (default: unlimited)"
    )

    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Close connections idle for this many seconds (default: never)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: $CUBBYHOLE_LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Per-command log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"cubbyhole {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    Environment first, then command-line overrides, then validation.

    Raises:
        ConfigError: If the resulting configuration is invalid.
    """
    config = ServerConfig.from_env()

    if args.port is not None:
        config.port = args.port
    if args.host is not None:
        config.host = args.host
    if args.max_connections is not None:
        config.max_connections = args.max_connections
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    config.validate()
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        server = CubbyholeServer(config)
        server.run()
    except (OSError, CubbyholeError) as e:
        logger.error(f"Fatal: {e}")
        print(f"Error: {e}. Terminating.", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
