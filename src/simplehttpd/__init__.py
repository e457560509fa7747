"""
=============================================================================
SIMPLEHTTPD
=============================================================================

A minimal HTTP/1.1 server on raw sockets.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept ──► dispatch ──► parse ──► match ──► handler ──► close     │
    │                                                                      │
    │   • one bounded read per request, one request per connection        │
    │   • exact routes, then :param templated routes                      │
    │   • inline, thread-per-connection or pooled workers, all bounded    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Quick start:

    from simplehttpd import HTTPServer, ServerConfig, Router, HTTPStatus

    router = Router()

    @router.get("/user/:id")
    def get_user(request, conn):
        conn.respond(HTTPStatus.OK, request.params["id"])

    HTTPServer(ServerConfig(routes=router.freeze())).run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, ConcurrencyMode
from .server import HTTPServer
from .core import BindError, Connection
from .http import (
    HTTPStatus,
    IncomingRequest,
    Method,
    MimeType,
    Route,
    RouteTable,
    Router,
    match_route,
    write_response,
)

__all__ = [
    "__version__",
    "HTTPServer",
    "ServerConfig",
    "ConcurrencyMode",
    "BindError",
    "Connection",
    "HTTPStatus",
    "IncomingRequest",
    "Method",
    "MimeType",
    "Route",
    "RouteTable",
    "Router",
    "match_route",
    "write_response",
]
