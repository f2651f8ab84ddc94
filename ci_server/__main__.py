"""
Standalone entrypoint for running the notification server.

Usage:
    python -m ci_server [OPTIONS]
    ci-notify-server [OPTIONS]  (after pip install)

Environment Variables:
    CI_NOTIFY_DB_PATH: Database path (default: ci_notify.db)
    CI_NOTIFY_PORT: Port to listen on (default: 8000)
    CI_RECIPIENT_PROVIDERS: Comma-separated recipient providers
    CI_DEFAULT_EMAIL_DOMAIN: Domain appended to bare user ids
"""

import argparse
import logging
import os
import sys

import uvicorn

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="CI notification server - resolves build notification recipients",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  CI_NOTIFY_DB_PATH         Database path (default: ci_notify.db)
  CI_NOTIFY_PORT            Port to listen on (default: 8000)
  CI_RECIPIENT_PROVIDERS    Comma-separated recipient providers
  CI_DEFAULT_EMAIL_DOMAIN   Domain appended to bare user ids

Note: Command-line arguments override environment variables.

Examples:
  # Run with default settings
  ci-notify-server

  # Use custom database and port
  ci-notify-server --db-path /tmp/notify.db --port 9000
        """,
    )

    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="Path to SQLite database file (default: CI_NOTIFY_DB_PATH env or ci_notify.db)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: CI_NOTIFY_PORT env or 8000)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def get_port(args: argparse.Namespace) -> int:
    """
    Get the listening port from CLI args or environment.

    Args:
        args: Parsed command-line arguments

    Returns:
        Port number, 8000 if the configured value is invalid
    """
    if args.port is not None:
        if not 0 < args.port < 65536:
            logger.warning(f"Invalid port={args.port}, using default 8000")
            return 8000
        return args.port

    try:
        port = int(os.environ.get("CI_NOTIFY_PORT", "8000"))
        if not 0 < port < 65536:
            logger.warning(f"Invalid CI_NOTIFY_PORT={port}, using default 8000")
            return 8000
        return port
    except ValueError:
        logger.warning(
            f"Invalid CI_NOTIFY_PORT={os.environ.get('CI_NOTIFY_PORT')}, "
            "using default 8000"
        )
        return 8000


def main(argv: list[str] | None = None) -> int:
    """
    Main entrypoint for the server.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # The app reads its database path from the environment at startup
    if args.db_path:
        os.environ["CI_NOTIFY_DB_PATH"] = args.db_path

    port = get_port(args)
    logger.info(f"Starting notification server on {args.host}:{port}")

    try:
        uvicorn.run(
            "ci_server.app:app",
            host=args.host,
            port=port,
            log_level=args.log_level.lower(),
        )
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
