"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    python -m simplehttpd                        # localhost:8080, thread mode
    python -m simplehttpd --port 3000
    python -m simplehttpd --host 0.0.0.0         # all interfaces
    python -m simplehttpd --mode pool -w 16      # 16 pooled workers
    python -m simplehttpd -l DEBUG --log-format json

Serves a small demo application:

    GET  /             plain-text greeting
    GET  /user/:id     echoes the captured id as JSON
    POST /echo         echoes the request body back
    GET  /health       {"status": "ok"}

Settings come from, highest priority first: command-line flags, HTTP_*
environment variables (see ServerConfig.from_env), defaults.

=============================================================================
"""

import argparse
import json
import logging
import sys
import time

from . import __version__
from .config import ConcurrencyMode, ServerConfig, LOG_LEVELS
from .core.socket_server import BindError
from .http import HTTPStatus, MimeType, Router, json_response
from .server import HTTPServer


def build_demo_routes():
    """Route table served by the CLI."""
    router = Router()
    started_at = time.time()

    @router.get("/", name="index")
    def index(request, conn):
        conn.respond(HTTPStatus.OK, f"simplehttpd {__version__}\n")

    @router.get("/user/:id", name="user")
    def get_user(request, conn):
        json_response({"id": request.params["id"]}).write(conn)

    @router.post("/echo", name="echo")
    def echo(request, conn):
        conn.respond(HTTPStatus.OK, request.body, request.content_type or MimeType.TEXT_PLAIN)

    @router.get("/health", name="health")
    def health(request, conn):
        json_response({
            "status": "ok",
            "uptime_seconds": round(time.time() - started_at, 1),
        }).write(conn)

    return router.freeze()


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str, log_format: str):
    """Process-wide logging. Only the CLI does this; the library never does."""
    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simplehttpd",
        description="Minimal HTTP/1.1 server, one request per connection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m simplehttpd                      # Run with defaults
  python -m simplehttpd --port 3000          # Custom port
  python -m simplehttpd --mode inline        # No worker threads
  python -m simplehttpd --read-timeout 0     # Wait forever for requests
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080, 0 picks a free port)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY AND LIMITS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--mode", "-m",
        choices=[m.value for m in ConcurrencyMode],
        default=None,
        help="Concurrency mode (default: thread)"
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Connections handled at once in thread/pool mode (default: 64)"
    )
    parser.add_argument(
        "--max-request-bytes",
        type=int,
        default=None,
        help="Largest request accepted, in bytes (default: 4096)"
    )
    parser.add_argument(
        "--read-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a request, 0 waits forever (default: 30)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=list(LOG_LEVELS),
        type=str.upper,
        default=None,
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Log line format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"simplehttpd {__version__}"
    )
    return parser


def config_from_args(args: argparse.Namespace, routes) -> ServerConfig:
    """Environment first, then every flag the user actually passed."""
    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.mode is not None:
        overrides["concurrency_mode"] = ConcurrencyMode(args.mode)
    if args.workers is not None:
        overrides["max_workers"] = args.workers
    if args.max_request_bytes is not None:
        overrides["max_request_bytes"] = args.max_request_bytes
    if args.read_timeout is not None:
        overrides["read_timeout"] = args.read_timeout or None
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    if args.log_format is not None:
        overrides["log_format"] = args.log_format

    return ServerConfig.from_env(routes=routes, **overrides)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args, build_demo_routes())
        config.validate()
    except ValueError as e:
        print(f"simplehttpd: invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_format)

    try:
        HTTPServer(config).run()
    except BindError:
        # Already logged at CRITICAL
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
