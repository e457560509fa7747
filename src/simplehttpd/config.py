"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Everything the server needs to run, in one immutable value.

=============================================================================
BUILT ONCE, SHARED BY EVERY WORKER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ServerConfig(routes=..., port=...)     ← built once at startup     │
    │          │                                                           │
    │          ├── validate()                  ← fail fast, before bind    │
    │          │                                                           │
    │          ├──► accept loop                                            │
    │          ├──► worker 1   ┐                                           │
    │          ├──► worker 2   ├ read concurrently, no locks: the config   │
    │          └──► worker N   ┘ and its RouteTable are frozen             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONFIGURATION SOURCES
=============================================================================

Priority (highest to lowest):

    1. Command-line arguments     python -m simplehttpd --port 3000
    2. Environment variables      HTTP_PORT=3000 python -m simplehttpd
    3. Defaults in this dataclass

=============================================================================
"""

import os
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from .http.router import Route, RouteTable, Router


class ConcurrencyMode(str, Enum):
    """
    How accepted connections are run.

    INLINE  The accept loop runs each connection itself, one at a time.
    THREAD  One short-lived thread per connection, at most max_workers alive.
    POOL    max_workers long-lived threads fed by a bounded queue.
    """
    INLINE = "inline"
    THREAD = "thread"
    POOL = "pool"


LOG_FORMATS = ("text", "json")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _default_logger() -> logging.Logger:
    return logging.getLogger("simplehttpd.server")


def _coerce_routes(routes) -> RouteTable:
    if isinstance(routes, RouteTable):
        return routes
    if isinstance(routes, Router):
        return routes.freeze()
    if isinstance(routes, Route):
        return RouteTable((routes,))
    return RouteTable(tuple(routes or ()))


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the HTTP server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    APPLICATION
    - routes (a RouteTable; a Router or a sequence of Routes is frozen
      into one on construction)

    NETWORK
    - host, port, backlog, accept_poll_interval

    REQUESTS
    - max_request_bytes, read_timeout

    CONCURRENCY
    - concurrency_mode, max_workers, queue_size, admission_timeout

    LOGGING
    - logger, log_level, log_format, access_log

    =========================================================================
    DEVELOPMENT VS PRODUCTION
    =========================================================================

    Development:
        ServerConfig(
            routes=router.freeze(),
            port=0,                                # any free port
            concurrency_mode=ConcurrencyMode.INLINE,
            log_level="DEBUG",
        )

    Production:
        ServerConfig(
            routes=router.freeze(),
            host="0.0.0.0",
            max_workers=128,
            log_format="json",
        )

    =========================================================================
    """

    routes: RouteTable = field(default_factory=RouteTable)

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8080
    """0 asks the OS for a free port; see HTTPServer.address for the result."""

    backlog: int = 128

    accept_poll_interval: float = 1.0
    """How long accept() blocks before the loop re-checks for shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # REQUESTS
    # ─────────────────────────────────────────────────────────────────────

    max_request_bytes: int = 4096
    """Upper bound of the single read. Bigger requests are answered 413."""

    read_timeout: Optional[float] = 30.0
    """Deadline for the request read. None waits forever."""

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    concurrency_mode: ConcurrencyMode = ConcurrencyMode.THREAD

    max_workers: int = 64
    """Connections handled at once in THREAD and POOL modes."""

    queue_size: int = 256
    """POOL mode: accepted connections allowed to wait for a worker."""

    admission_timeout: float = 1.0
    """THREAD mode: how long a connection waits for a free slot before 503."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    logger: logging.Logger = field(default_factory=_default_logger, compare=False)

    log_level: str = "INFO"
    log_format: str = "text"
    access_log: bool = True

    handle_signals: bool = True
    """Install SIGINT/SIGTERM handlers when run on the main thread."""

    def __post_init__(self):
        object.__setattr__(self, "routes", _coerce_routes(self.routes))
        if not isinstance(self.concurrency_mode, ConcurrencyMode):
            object.__setattr__(
                self, "concurrency_mode", ConcurrencyMode(str(self.concurrency_mode).lower())
            )
        object.__setattr__(self, "log_level", str(self.log_level).upper())
        object.__setattr__(self, "log_format", str(self.log_format).lower())

    @classmethod
    def from_env(
        cls,
        routes: Union[RouteTable, Router, tuple, list] = (),
        **overrides,
    ) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HTTP_HOST               Bind address (default: 127.0.0.1)
        HTTP_PORT               Port (default: 8080)
        HTTP_MODE               inline | thread | pool (default: thread)
        HTTP_WORKERS            Max concurrent connections (default: 64)
        HTTP_MAX_REQUEST_BYTES  Read bound (default: 4096)
        HTTP_READ_TIMEOUT       Seconds; "none" or "0" disables (default: 30)
        HTTP_LOG_LEVEL          Logging level (default: INFO)
        HTTP_LOG_FORMAT         text | json (default: text)

        Keyword overrides win over the environment:

            config = ServerConfig.from_env(routes=table, port=0)

        =====================================================================
        """
        values = dict(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            concurrency_mode=ConcurrencyMode(os.getenv("HTTP_MODE", "thread").lower()),
            max_workers=int(os.getenv("HTTP_WORKERS", "64")),
            max_request_bytes=int(os.getenv("HTTP_MAX_REQUEST_BYTES", "4096")),
            read_timeout=_parse_timeout(os.getenv("HTTP_READ_TIMEOUT", "30")),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("HTTP_LOG_FORMAT", "text"),
        )
        values.update(overrides)
        return cls(routes=routes, **values)

    def with_overrides(self, **changes) -> "ServerConfig":
        """Copy of this config with some fields replaced."""
        return replace(self, **changes)

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by the server before it binds, so a bad value fails at startup
        with a clear message instead of on the first request.

        Raises:
            ValueError: Naming the offending field.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.max_request_bytes < 1:
            raise ValueError("max_request_bytes must be >= 1")

        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0 or None")

        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.admission_timeout < 0:
            raise ValueError("admission_timeout must be >= 0")

        if self.accept_poll_interval <= 0:
            raise ValueError("accept_poll_interval must be > 0")

        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")


def _parse_timeout(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip().lower() in ("", "none", "0"):
        return None
    return float(value)
