"""
=============================================================================
RESPONSE WRITER
=============================================================================

Serializes a status, body and content type into HTTP/1.1 wire format and
writes it to a connection.

=============================================================================
WIRE FORMAT
=============================================================================

    HTTP/1.1 200 OK\r\n                  ← status line
    Content-Type: application/json\r\n   ← from the MIME vocabulary
    Content-Length: 10\r\n               ← byte length of the body
    \r\n                                 ← blank line
    {"id": 42}                           ← body, verbatim

No other headers are produced: no Date, no Server, no Connection. The
connection is closed after every exchange, so the client relies on
Content-Length (or the FIN) to find the end of the body.

The writer never closes the connection. Closing belongs to the connection
handler, which does it on every path.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass
from typing import Union, TYPE_CHECKING

from .mime_types import MimeType, content_type_for
from .status_codes import HTTPStatus, status_text

if TYPE_CHECKING:
    from ..core.connection import Connection


logger = logging.getLogger(__name__)

HTTP_VERSION = "HTTP/1.1"

Body = Union[str, bytes]


def _encode_body(body: Body) -> bytes:
    if isinstance(body, str):
        return body.encode("utf-8")
    return bytes(body)


def format_response(
    status: Union[HTTPStatus, int],
    body: Body = b"",
    content_type: Union[MimeType, str, None] = MimeType.TEXT_PLAIN,
) -> bytes:
    """
    Build the complete response bytes.

    Args:
        status: Status code. Codes outside the vocabulary are sent as
                500 Internal Server Error.
        body: Response body. Strings are encoded as UTF-8.
        content_type: MimeType member or wire string. Unknown types are
                      sent as text/plain.

    Returns:
        Status line, Content-Type, Content-Length, blank line and body.
    """
    payload = _encode_body(body)
    head = (
        f"{HTTP_VERSION} {status_text(status)}\r\n"
        f"Content-Type: {content_type_for(content_type)}\r\n"
        f"Content-Length: {len(payload)}\r\n"
        f"\r\n"
    )
    return head.encode("latin-1") + payload


def write_response(
    conn: "Connection",
    status: Union[HTTPStatus, int],
    body: Body = b"",
    content_type: Union[MimeType, str, None] = MimeType.TEXT_PLAIN,
) -> bool:
    """
    Write one response to a connection with a single write call.

    The connection is left open for the caller.

    Example:
        def get_user(request, conn):
            write_response(conn, HTTPStatus.OK, '{"id": 42}', MimeType.APPLICATION_JSON)

    Returns:
        True if the response was sent, False if the client was gone.
    """
    resolved = HTTPStatus.lookup(status)
    if resolved != status:
        logger.warning(f"[{conn.id}] Unknown status code {status!r}, sending {int(resolved)}")
    return conn.send_response(format_response(resolved, body, content_type), status=int(resolved))


@dataclass
class HTTPResponse:
    """
    A response held as data, for code that builds a response before it has
    a connection to write it to.

        response = HTTPResponse(HTTPStatus.CREATED, '{"id": 7}', MimeType.APPLICATION_JSON)
        response.write(conn)
    """

    status: Union[HTTPStatus, int] = HTTPStatus.OK
    body: Body = b""
    content_type: Union[MimeType, str, None] = MimeType.TEXT_PLAIN

    @property
    def status_line(self) -> str:
        return f"{HTTP_VERSION} {status_text(self.status)}"

    def to_bytes(self) -> bytes:
        return format_response(self.status, self.body, self.content_type)

    def write(self, conn: "Connection") -> bool:
        return write_response(conn, self.status, self.body, self.content_type)


# =============================================================================
# CONVENIENCE RESPONSES
# =============================================================================

def text(body: str, status: Union[HTTPStatus, int] = HTTPStatus.OK) -> HTTPResponse:
    """Plain-text response."""
    return HTTPResponse(status, body, MimeType.TEXT_PLAIN)


def html(body: str, status: Union[HTTPStatus, int] = HTTPStatus.OK) -> HTTPResponse:
    """HTML response."""
    return HTTPResponse(status, body, MimeType.TEXT_HTML)


def json_response(data, status: Union[HTTPStatus, int] = HTTPStatus.OK) -> HTTPResponse:
    """JSON response. Non-ASCII characters are kept as UTF-8."""
    return HTTPResponse(status, json.dumps(data, ensure_ascii=False), MimeType.APPLICATION_JSON)


def error(status: Union[HTTPStatus, int], message: str) -> HTTPResponse:
    """Plain-text error response, as the server itself sends them."""
    return HTTPResponse(status, message, MimeType.TEXT_PLAIN)
