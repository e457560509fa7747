"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Callable, Dict, Generator, List, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from simplehttpd import HTTPServer, ServerConfig, ConcurrencyMode
from simplehttpd.core.connection import Connection
from simplehttpd.http import HTTPStatus, MimeType, Router, RouteTable


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /user/42 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return (
        b"POST /echo HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
    ) + body


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


# =============================================================================
# APPLICATION UNDER TEST
# =============================================================================

def build_test_routes() -> RouteTable:
    router = Router()

    @router.get("/")
    def index(request, conn):
        conn.respond(HTTPStatus.OK, "index")

    @router.get("/user/:id", name="user")
    def get_user(request, conn):
        conn.respond(HTTPStatus.OK, f"user {request.params['id']}")

    @router.get("/user/me")
    def get_me(request, conn):
        conn.respond(HTTPStatus.OK, "me")

    @router.post("/echo")
    def echo(request, conn):
        conn.respond(HTTPStatus.OK, request.body, MimeType.APPLICATION_JSON)

    @router.get("/boom")
    def boom(request, conn):
        raise RuntimeError("handler exploded")

    @router.get("/silent")
    def silent(request, conn):
        pass

    return router.freeze()


@pytest.fixture
def routes() -> RouteTable:
    return build_test_routes()


@pytest.fixture
def config(routes) -> ServerConfig:
    """Test configuration: port chosen by the OS, no signal handlers."""
    return ServerConfig(
        routes=routes,
        host="127.0.0.1",
        port=0,
        max_workers=4,
        read_timeout=5.0,
        accept_poll_interval=0.1,
        handle_signals=False,
    )


# =============================================================================
# RAW RESPONSES
# =============================================================================

def parse_response(data: bytes) -> Tuple[int, Dict[str, str], bytes]:
    """Split a raw response into (status code, headers, body)."""
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status_code = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip()] = value.strip()
    return status_code, headers, body


@pytest.fixture
def response_parser() -> Callable[[bytes], Tuple[int, Dict[str, str], bytes]]:
    return parse_response


def read_until_eof(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


# =============================================================================
# IN-PROCESS EXCHANGES (no listener, socketpair transport)
# =============================================================================

@pytest.fixture
def connection_pair() -> Generator[Callable[..., Tuple[socket.socket, Connection]], None, None]:
    """
    Factory for (client socket, server-side Connection) pairs.

    Both ends are closed after the test.
    """
    opened: List[socket.socket] = []

    def make(read_timeout=None) -> Tuple[socket.socket, Connection]:
        client, server_side = socket.socketpair()
        client.settimeout(5.0)
        opened.extend([client, server_side])
        conn = Connection(socket=server_side, address=("127.0.0.1", 50000), read_timeout=read_timeout)
        return client, conn

    yield make

    for sock in opened:
        sock.close()


@pytest.fixture
def exchange(connection_pair) -> Callable[..., bytes]:
    """
    Run one request through HTTPServer.handle_connection on this thread.

        raw = exchange(server, b"GET / HTTP/1.1\\r\\n\\r\\n")
    """

    def run(server: HTTPServer, request: bytes) -> bytes:
        client, conn = connection_pair(server.config.read_timeout)
        client.sendall(request)
        client.shutdown(socket.SHUT_WR)
        server.handle_connection(conn)
        return read_until_eof(client)

    return run


# =============================================================================
# BACKGROUND SERVER
# =============================================================================

class RunningServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self.error = None
        self._thread: threading.Thread = None

    @property
    def address(self) -> Tuple[str, int]:
        return self.server.address

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError(f"Server failed to start: {self.error!r}")

    def _run(self):
        try:
            self.server.run()
        except Exception as e:
            self.error = e

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    @property
    def stopped(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    def request(self, raw: bytes, timeout: float = 5.0) -> bytes:
        """Send raw request bytes and return everything until the server closes."""
        with socket.create_connection(self.address, timeout=timeout) as sock:
            sock.sendall(raw)
            return read_until_eof(sock)


@pytest.fixture
def start_server(config) -> Generator[Callable[..., RunningServer], None, None]:
    """
    Factory that starts a background server with config overrides.

        srv = start_server(concurrency_mode=ConcurrencyMode.POOL)
    """
    started: List[RunningServer] = []

    def start(**overrides) -> RunningServer:
        running = RunningServer(HTTPServer(config.with_overrides(**overrides)))
        running.start()
        started.append(running)
        return running

    yield start

    for running in started:
        running.stop()


@pytest.fixture(params=list(ConcurrencyMode), ids=lambda mode: mode.value)
def running_server(request, start_server) -> RunningServer:
    """A background server, once per concurrency mode."""
    return start_server(concurrency_mode=request.param)
