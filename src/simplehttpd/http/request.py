"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the bytes of a single socket read into an IncomingRequest.

=============================================================================
REQUEST ANATOMY
=============================================================================

    GET /user/42 HTTP/1.1\r\n        ← request line: METHOD SP PATH SP VERSION
    Host: localhost:8080\r\n         ┐
    Content-Type: text/plain\r\n     ├ header lines: Key: Value
    X-Trace: abc\r\n                 ┘
    \r\n                             ← blank line ends the header block
    ...                              ← whatever body bytes arrived in the read

=============================================================================
ONE READ, NO RETRY
=============================================================================

The parser reads from the connection exactly once, asking for at most
max_request_bytes + 1 bytes:

    ┌──────────────────────────┬─────────────────────────────────────────┐
    │ read outcome             │ result                                   │
    ├──────────────────────────┼─────────────────────────────────────────┤
    │ socket error             │ ReadError         (400, no retry)       │
    │ read deadline expired    │ RequestTimeout    (408)                 │
    │ 0 bytes (peer closed)    │ EmptyRequest      (closed silently)     │
    │ > max_request_bytes      │ PayloadTooLarge   (413)                 │
    │ anything else            │ parse(data)                              │
    └──────────────────────────┴─────────────────────────────────────────┘

A request that does not arrive in that one read is parsed as far as it
got. The extra byte is what lets an oversized request be told apart from
one that exactly fills the buffer.

=============================================================================
LENIENCY
=============================================================================

- Lines may end in "\n" or "\r\n".
- Unknown method tokens are accepted as Method.UNKNOWN; such requests can
  never match a route and end in 404.
- Header lines without a ":" are skipped.
- A request line of only METHOD SP PATH is accepted (version HTTP/1.1).

=============================================================================
"""

import socket
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, TYPE_CHECKING

from .status_codes import HTTPStatus

if TYPE_CHECKING:
    from ..core.connection import Connection


logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUEST_BYTES = 4096
DEFAULT_VERSION = "HTTP/1.1"


# =============================================================================
# PARSE FAILURES
# =============================================================================

class HTTPParseError(Exception):
    """
    Raised when a request cannot be read or parsed.

    Carries the HTTP status the server answers with. The class name is part
    of the response body, so clients can tell failures apart:

        400 Bad Request
        MalformedRequestLine: Invalid request header
    """

    status_code: int = HTTPStatus.BAD_REQUEST

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ReadError(HTTPParseError):
    """The single read from the socket failed."""


class RequestTimeout(ReadError):
    """No data arrived before the read deadline."""
    status_code = HTTPStatus.REQUEST_TIMEOUT


class EmptyRequest(ReadError):
    """The peer closed the connection without sending anything."""


class PayloadTooLarge(HTTPParseError):
    """The request did not fit in max_request_bytes."""
    status_code = HTTPStatus.PAYLOAD_TOO_LARGE


class MalformedRequestLine(HTTPParseError):
    """The request line does not have the METHOD SP PATH [SP VERSION] shape."""


class MissingPathOrMethod(HTTPParseError):
    """The request line has the right shape but an empty method or path."""


# =============================================================================
# REQUEST MODEL
# =============================================================================

class Method(str, Enum):
    """
    Request methods.

    UNKNOWN stands in for any token outside the nine recognized names.
    Tokens are case-sensitive: "get" is UNKNOWN.
    """

    GET = "GET"
    POST = "POST"
    HEAD = "HEAD"
    PUT = "PUT"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    PATCH = "PATCH"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, token: str) -> "Method":
        """Map a method token to a member; never raises."""
        member = _METHODS_BY_TOKEN.get(token)
        return member if member is not None else cls.UNKNOWN


_METHODS_BY_TOKEN = {m.value: m for m in Method if m is not Method.UNKNOWN}


@dataclass
class IncomingRequest:
    """
    A parsed request, owned by the worker handling its connection.

    Attributes:
        method:         Method member (UNKNOWN for unrecognized tokens)
        path:           Request target exactly as sent, query string included
        version:        Protocol token, e.g. "HTTP/1.1"
        headers:        Header values keyed by lower-cased name
        params:         Captures from a templated route, e.g. {"id": "42"}
        raw_method:     The method token as sent
        body:           Bytes after the header block that arrived in the read
        client_address: (ip, port) of the client
    """

    method: Method
    path: str
    version: str = DEFAULT_VERSION

    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)

    raw_method: str = ""
    body: bytes = b""
    client_address: tuple = ("", 0)

    def __post_init__(self):
        if not self.raw_method:
            self.raw_method = self.method.value

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("text/plain; charset=x" -> "text/plain")."""
        value = self.headers.get("content-type", "")
        return value.split(";")[0].strip().lower() or None

    @property
    def text(self) -> str:
        """Body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")


# =============================================================================
# PARSER
# =============================================================================

class RequestParser:
    """
    Reads and parses one request per connection.

    Usage:
        parser = RequestParser(max_request_bytes=4096)
        request = parser.read(conn)           # from a socket
        request = parser.parse(raw_bytes)     # from bytes already in hand
    """

    def __init__(self, max_request_bytes: int = DEFAULT_MAX_REQUEST_BYTES):
        if max_request_bytes < 1:
            raise ValueError("max_request_bytes must be >= 1")
        self.max_request_bytes = max_request_bytes

    def read(self, conn: "Connection") -> IncomingRequest:
        """
        Read the request from a connection with a single recv() and parse it.

        Raises:
            HTTPParseError: One of the subclasses in the table above.
        """
        try:
            data = conn.read_once(self.max_request_bytes + 1)
        except socket.timeout:
            raise RequestTimeout("Request read timed out")
        except OSError as e:
            raise ReadError(f"Failed to read request: {e}") from e

        if not data:
            raise EmptyRequest("Connection closed before a request was sent")

        if len(data) > self.max_request_bytes:
            raise PayloadTooLarge(
                f"Request exceeds {self.max_request_bytes} bytes"
            )

        return self.parse(data, conn.address)

    def parse(self, data: bytes, client_address: tuple = ("", 0)) -> IncomingRequest:
        """
        Parse raw request bytes.

        Algorithm:
            1. Split the head (everything before the first blank line) from
               the body bytes.
            2. Split the head into lines on "\\n", dropping a trailing "\\r".
            3. First line -> method, path, version.
            4. Remaining lines -> headers, lower-cased keys.

        Raises:
            MalformedRequestLine: Fewer than two, or more than three, tokens.
            MissingPathOrMethod: An empty method or path token.
        """
        head, body = _split_head(data)
        lines = [line[:-1] if line.endswith("\r") else line
                 for line in head.decode("utf-8", errors="replace").split("\n")]

        method, raw_method, path, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        return IncomingRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            raw_method=raw_method,
            body=body,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple:
        """
        Split "METHOD SP PATH SP VERSION" on single spaces.

            "GET /user/42 HTTP/1.1"  → (GET, "GET", "/user/42", "HTTP/1.1")
            "GET /user/42"           → (GET, "GET", "/user/42", "HTTP/1.1")
            "GET"                    → MalformedRequestLine
            "GET  HTTP/1.1"          → MissingPathOrMethod (empty path token)
        """
        tokens = line.split(" ")

        if len(tokens) < 2:
            raise MalformedRequestLine("Invalid request header")
        if len(tokens) > 3:
            raise MalformedRequestLine(f"Invalid request header: too many fields in {line!r}")

        raw_method, path = tokens[0], tokens[1]
        version = tokens[2] if len(tokens) == 3 and tokens[2] else DEFAULT_VERSION

        if not raw_method:
            raise MissingPathOrMethod("Request line has no method")
        if not path:
            raise MissingPathOrMethod("Request line has no path")

        method = Method.parse(raw_method)
        if method is Method.UNKNOWN:
            logger.debug(f"Unrecognized method {raw_method!r}, accepting as UNKNOWN")

        return method, raw_method, path, version

    def _parse_headers(self, lines: list) -> Dict[str, str]:
        """
        Parse "Key: Value" lines into a dict keyed by lower-cased name.

        Stops at the first blank line. Lines without a ":" are skipped.
        A repeated header is joined with ", ".
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                break

            name, sep, value = line.partition(":")
            if not sep:
                continue

            name = name.strip().lower()
            if not name:
                continue
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def _split_head(data: bytes) -> tuple:
    """Split bytes at the first blank line ("\\r\\n\\r\\n" or "\\n\\n")."""
    best = None
    for marker in (b"\r\n\r\n", b"\n\n"):
        index = data.find(marker)
        if index != -1 and (best is None or index < best[0]):
            best = (index, len(marker))

    if best is None:
        return data, b""
    index, width = best
    return data[:index], data[index + width:]


def parse_request(
    data: bytes,
    client_address: tuple = ("", 0),
    max_request_bytes: int = DEFAULT_MAX_REQUEST_BYTES,
) -> IncomingRequest:
    """
    Parse request bytes with a throwaway parser.

    Raises PayloadTooLarge if data is bigger than max_request_bytes, the
    same as a read from a socket would.
    """
    if len(data) > max_request_bytes:
        raise PayloadTooLarge(f"Request exceeds {max_request_bytes} bytes")
    return RequestParser(max_request_bytes).parse(data, client_address)
