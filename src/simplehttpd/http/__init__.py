"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything that turns bytes into requests and responses into bytes. Nothing
in this package touches a listening socket; it only sees the Connection it
is handed.

=============================================================================
MODULE COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │ ─────────────────────────────────────────────────────────────────── │
    │ One bounded read → IncomingRequest                                  │
    │                                                                      │
    │ Input:   b"GET /user/42 HTTP/1.1\r\nHost: ...\r\n\r\n"              │
    │ Output:  IncomingRequest(method=GET, path="/user/42", ...)          │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ ROUTER (router.py)                                                  │
    │ ─────────────────────────────────────────────────────────────────── │
    │ (method, path) → RouteMatch                                         │
    │                                                                      │
    │   • Exact routes first: /user/me                                    │
    │   • Templated second:   /user/:id → {"id": "42"}                    │
    │   • Router builder, frozen into an immutable RouteTable             │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ RESPONSE WRITER (response.py)                                       │
    │ ─────────────────────────────────────────────────────────────────── │
    │ status + content type + body → HTTP/1.1 bytes on the connection     │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ VOCABULARIES (status_codes.py, mime_types.py)                       │
    │ ─────────────────────────────────────────────────────────────────── │
    │ HTTPStatus.NOT_FOUND → "404 Not Found"                              │
    │ MimeType.APPLICATION_JSON → "application/json"                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import (
    IncomingRequest,
    Method,
    RequestParser,
    parse_request,
    # Parse failures
    HTTPParseError,
    ReadError,
    RequestTimeout,
    EmptyRequest,
    PayloadTooLarge,
    MalformedRequestLine,
    MissingPathOrMethod,
)
from .response import (
    HTTPResponse,
    format_response,
    write_response,
    text,
    html,
    json_response,
    error,
)
from .router import Handler, Route, RouteMatch, RouteTable, Router, match_route
from .status_codes import HTTPStatus, status_text
from .mime_types import MimeType, content_type_for

__all__ = [
    # Request parsing
    "IncomingRequest",
    "Method",
    "RequestParser",
    "parse_request",
    "HTTPParseError",
    "ReadError",
    "RequestTimeout",
    "EmptyRequest",
    "PayloadTooLarge",
    "MalformedRequestLine",
    "MissingPathOrMethod",

    # Response writing
    "HTTPResponse",
    "format_response",
    "write_response",
    "text",
    "html",
    "json_response",
    "error",

    # Routing
    "Handler",
    "Route",
    "RouteMatch",
    "RouteTable",
    "Router",
    "match_route",

    # Vocabularies
    "HTTPStatus",
    "status_text",
    "MimeType",
    "content_type_for",
]
