"""
=============================================================================
COMMAND-LINE INTERFACE
=============================================================================

Entry point for running the server as a module:

    python -m restserver [options]

Flags override environment variables (REST_HOST, REST_PORT, REST_WORKERS,
REST_LOG_LEVEL), which override the ServerConfig defaults.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .server import RestServer
from .config import ServerConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restserver",
        description="Multiplexed HTTP/JSON command server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m restserver                      # 127.0.0.1:27016, 3 workers
  python -m restserver --port 8080          # Custom port
  python -m restserver --host 0.0.0.0       # Listen on all interfaces
  python -m restserver --workers 8          # 8 worker threads
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 27016)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Number of worker threads (default: 3)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"restserver {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flag that was given on top."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.workers is not None:
        config.workers = args.workers
    if args.log_level is not None:
        config.log_level = args.log_level

    return config


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        server = RestServer(config_from_args(args))
        server.run()
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
