"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket for the lifetime of a single
request-response exchange.

=============================================================================
ONE EXCHANGE PER CONNECTION
=============================================================================

The server does not keep connections alive. Every connection follows the
same short life:

    NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSING ──► CLOSED
     │         │             │                        ▲
     │         │             └── handler wrote nothing┤
     │         └── parse error / no route ──► WRITING ┤
     └────────────── fault on any path ───────────────┘

Exactly one worker owns a Connection. It is closed on every exit path by
using it as a context manager:

    with conn:
        data = conn.read_once(4096)
        ...
        conn.respond(HTTPStatus.OK, "hello")

=============================================================================
"""

import socket
import time
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from ..http.mime_types import MimeType
from ..http.status_codes import HTTPStatus
from ..http.response import write_response


logger = logging.getLogger(__name__)

# Upper bound on time spent discarding unread request bytes during close().
_DRAIN_TIMEOUT = 0.5


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    An exclusively-owned client socket.

    Attributes:
        socket: The accepted client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used to correlate log lines.
        state: Current lifecycle state.
        read_timeout: Deadline for the single request read. None blocks
                      until data arrives or the peer closes.
        response_status: Status code of the response written, if any.
        responses_sent: Number of responses handed to the socket.
        bytes_sent: Size of the response written, in bytes.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    read_timeout: Optional[float] = None

    response_status: Optional[int] = None
    bytes_sent: int = 0
    responses_sent: int = 0

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.read_timeout:
            self.socket.settimeout(self.read_timeout)

    @property
    def client_ip(self) -> str:
        if isinstance(self.address, tuple) and self.address:
            return str(self.address[0])
        return str(self.address or "")

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    @property
    def responded(self) -> bool:
        """True once a response has been written."""
        return self.responses_sent > 0

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # ─────────────────────────────────────────────────────────────────────
    # READING
    # ─────────────────────────────────────────────────────────────────────

    def read_once(self, max_bytes: int) -> bytes:
        """
        Perform a single recv() of at most max_bytes.

        There is no retry loop: whatever the first read returns is the whole
        request as far as the server is concerned. Socket errors (including
        socket.timeout) propagate to the caller.

        Returns:
            The bytes received; b"" if the peer closed without sending.
        """
        self.state = ConnectionState.READING
        data = self.socket.recv(max_bytes)
        logger.debug(f"[{self.id}] Read {len(data)} bytes from {self.client_ip}")
        return data

    # ─────────────────────────────────────────────────────────────────────
    # WRITING
    # ─────────────────────────────────────────────────────────────────────

    def send_response(self, data: bytes, status: Optional[int] = None) -> bool:
        """
        Send a serialized response with a single sendall().

        Args:
            data: Complete response bytes.
            status: Status code carried by data, recorded for access logs.
                    When omitted it is read from the status line of data.

        Returns:
            True if the bytes were handed to the kernel, False if the peer
            has gone away.
        """
        if self.responded:
            logger.warning(
                f"[{self.id}] Second response written on connection "
                f"(first was {self.response_status})"
            )

        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

        self.response_status = status if status is not None else _status_from_head(data)
        self.responses_sent += 1
        self.bytes_sent += len(data)
        return True

    def respond(
        self,
        status: Union[HTTPStatus, int],
        body: Union[str, bytes] = b"",
        content_type: Union[MimeType, str, None] = None,
    ) -> bool:
        """
        Write a response through the response writer.

        Shorthand for write_response(conn, status, body, content_type), the
        form most handlers use:

            def get_user(request, conn):
                conn.respond(HTTPStatus.OK, request.params["id"])
        """
        return write_response(self, status, body, content_type)

    # ─────────────────────────────────────────────────────────────────────
    # CLOSING
    # ─────────────────────────────────────────────────────────────────────

    def close(self):
        """
        Close the connection. Safe to call more than once.

        Sequence:
            1. shutdown(SHUT_WR)   send FIN so the client sees end of response
            2. drain               discard request bytes we never read, so
                                   the kernel does not answer them with RST
                                   and destroy the response in flight
            3. close()             release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        deadline = time.monotonic() + _DRAIN_TIMEOUT
        try:
            self.socket.settimeout(_DRAIN_TIMEOUT)
            while time.monotonic() < deadline and self.socket.recv(1024):
                pass
        except OSError:
            pass  # includes socket.timeout

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age * 1000:.1f}ms")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _status_from_head(data: bytes) -> Optional[int]:
    """Status code from "HTTP/1.1 200 OK..." bytes, None if there is none."""
    parts = data[:64].split(b" ", 2)
    if len(parts) >= 2 and parts[0].startswith(b"HTTP/") and parts[1][:3].isdigit():
        return int(parts[1][:3])
    return None
