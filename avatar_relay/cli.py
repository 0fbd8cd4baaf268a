"""
Avatar relay CLI.

Entry point:
    avatar-relay   - serve the websocket relay, client pages and status routes
"""

import argparse
import sys

import uvicorn

from avatar_relay.config import Settings

# Fix Windows console encoding for unicode characters
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")


def validate_port(value: str) -> int:
    """Validate port number is in valid range."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid port number: {value}")

    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"Port must be between 1 and 65535, got: {port}")
    return port


def validate_hostname(value: str) -> str:
    """Validate hostname or IP address."""
    if not value or len(value) > 253:
        raise argparse.ArgumentTypeError(f"Invalid hostname: {value}")
    valid_chars = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789.-:[]")
    if not all(c in valid_chars for c in value):
        raise argparse.ArgumentTypeError(f"Invalid characters in hostname: {value}")
    return value


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="avatar-relay",
        description="Avatar Relay - turn-taking websocket relay for a shared avatar",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  avatar-relay                          # Serve on 0.0.0.0:5000 (or $PORT)
  avatar-relay --port 8080              # Custom port
  avatar-relay --static-dir ./site      # Serve client pages from ./site
        """,
    )
    parser.add_argument(
        "--host",
        type=validate_hostname,
        default=defaults.host,
        help=f"Interface to bind (default: {defaults.host} or $AVATAR_RELAY_HOST)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=validate_port,
        default=defaults.port,
        help=f"HTTP/WebSocket port (default: {defaults.port}, $PORT or $AVATAR_RELAY_PORT)",
    )
    parser.add_argument(
        "--static-dir",
        default=defaults.static_dir,
        help=f"Directory of client pages (default: {defaults.static_dir})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=defaults.log_level.upper(),
        help="Logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--max-messages-per-second",
        type=int,
        default=defaults.max_messages_per_second,
        help="Inbound frames allowed per connection per second, 0 disables (default: 50)",
    )
    return parser


def main(argv=None) -> int:
    defaults = Settings()
    args = build_parser(defaults).parse_args(argv)

    settings = defaults.model_copy(
        update={
            "host": args.host,
            "port": args.port,
            "static_dir": args.static_dir,
            "log_level": args.log_level,
            "max_messages_per_second": args.max_messages_per_second,
        }
    )

    # Imported late so --help works without building the app
    from avatar_relay.app import create_app

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        ws_max_size=settings.max_message_bytes,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
