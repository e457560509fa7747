"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the listener, the dispatcher, the parser, the route table and the
response writer together.

=============================================================================
REQUEST FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer.accept()                                              │
    │         │ Connection                                                 │
    │         ▼                                                            │
    │   Dispatcher.dispatch(conn)     inline / thread / pool               │
    │         │                                                            │
    │         ▼                                                            │
    │   HTTPServer.handle_connection(conn)        with conn: ...           │
    │         │                                                            │
    │         ├── RequestParser.read(conn)                                 │
    │         │     ├── EmptyRequest    → close, nothing written           │
    │         │     └── HTTPParseError  → <status> "<Class>: <message>"    │
    │         │                                                            │
    │         ├── RouteTable.match(method, path)                           │
    │         │     └── None            → 404 "No route matches <path>"    │
    │         │                                                            │
    │         └── route.handler(request, conn)                             │
    │               └── writes its own response via conn.respond()         │
    │                                                                      │
    │   conn closed on every path; access record emitted                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
USAGE
=============================================================================

    router = Router()

    @router.get("/user/:id")
    def get_user(request, conn):
        conn.respond(HTTPStatus.OK, f"user {request.params['id']}")

    server = HTTPServer(ServerConfig(routes=router.freeze(), port=8080))
    server.run()        # blocks until SIGINT/SIGTERM or server.shutdown()

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .access_log import RequestLog, log_exchange
from .config import ServerConfig
from .core.connection import Connection, ConnectionState
from .core.dispatch import Dispatcher, create_dispatcher
from .core.socket_server import SocketServer
from .http.request import EmptyRequest, HTTPParseError, IncomingRequest, RequestParser
from .http.response import write_response
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Minimal HTTP/1.1 server: one request per connection.

    The configuration, including the route table, is fixed at construction
    and validated immediately, so a bad value fails before anything binds.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()
        self.log = self.config.logger

        self._socket_server = SocketServer(self.config)
        self._parser = RequestParser(max_request_bytes=self.config.max_request_bytes)
        self._dispatcher: Optional[Dispatcher] = None

    @property
    def routes(self):
        return self.config.routes

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (ip, port); with port 0 this is the port actually chosen."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Bind and serve until shutdown() is called or a signal arrives.

        Raises:
            BindError: The address could not be bound.
        """
        self.log.info(
            f"Starting HTTP server on {self.config.host}:{self.config.port} "
            f"({self.config.concurrency_mode.value} mode, {len(self.routes)} routes)"
        )
        for line in self.routes.describe():
            self.log.debug(f"  route {line}")

        self._dispatcher = create_dispatcher(self.config, self.handle_connection)
        self._dispatcher.start()

        try:
            self._socket_server.start(self._dispatcher.dispatch)
        except KeyboardInterrupt:
            self.log.info("Received keyboard interrupt")
        finally:
            self.log.info("Shutting down server...")
            self._dispatcher.shutdown(wait=True)
            self.log.info("Server stopped")

    def shutdown(self):
        """Stop accepting connections. run() returns once in-flight work ends."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening. False on bind failure or timeout."""
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def handle_connection(self, conn: Connection):
        """
        Serve exactly one request on conn, then close it.

        Runs on whichever thread the dispatcher chose. The connection is
        closed on every path, including a handler raising; that exception
        then propagates to the dispatcher's fault boundary.
        """
        request: Optional[IncomingRequest] = None
        try:
            with conn:
                try:
                    request = self._parser.read(conn)
                except EmptyRequest:
                    logger.debug(f"[{conn.id}] Client closed without sending a request")
                    return
                except HTTPParseError as e:
                    self.log.info(f"[{conn.id}] Rejected request from {conn.client_ip}: {e}")
                    self._send_error(conn, e.status_code, f"{type(e).__name__}: {e}")
                    return

                conn.state = ConnectionState.PROCESSING
                match = self.routes.match(request.method, request.path)
                if match is None:
                    self._send_error(conn, HTTPStatus.NOT_FOUND, f"No route matches {request.path}")
                    return

                request.params = match.params
                match.route.handler(request, conn)

                if not conn.responded:
                    self.log.warning(
                        f"[{conn.id}] Handler {_handler_name(match.route.handler)} for "
                        f"{request.raw_method} {request.path} wrote no response"
                    )
        finally:
            if conn.responded and self.config.access_log:
                log_exchange(RequestLog.from_exchange(conn, request), self.config.log_format)

    def _send_error(self, conn: Connection, status: int, message: str):
        write_response(conn, status, message)


def _handler_name(handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)
