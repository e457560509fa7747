"""
Unit tests for HTTPServer.handle_connection, over a socketpair.
"""

import json
import logging
import socket

import pytest

from simplehttpd import HTTPServer
from simplehttpd.core.connection import ConnectionState


@pytest.fixture
def server(config) -> HTTPServer:
    return HTTPServer(config)


class TestSuccessfulExchanges:
    """Requests that reach a handler."""

    def test_templated_route(self, server, exchange, response_parser):
        """GET /user/42 binds id=42 and the handler's response is sent."""
        raw = exchange(server, b"GET /user/42 HTTP/1.1\r\nHost: x\r\n\r\n")
        status, headers, body = response_parser(raw)

        assert status == 200
        assert body == b"user 42"
        assert headers["Content-Type"] == "text/plain"
        assert headers["Content-Length"] == "7"

    def test_exact_route_wins(self, server, exchange, response_parser):
        """/user/me is exact, so it beats /user/:id although registered later."""
        status, _, body = response_parser(exchange(server, b"GET /user/me HTTP/1.1\r\n\r\n"))
        assert status == 200
        assert body == b"me"

    def test_body_reaches_handler(self, server, exchange, response_parser, sample_post_request):
        status, headers, body = response_parser(exchange(server, sample_post_request))

        assert status == 200
        assert headers["Content-Type"] == "application/json"
        assert json.loads(body) == {"name": "John", "email": "john@example.com"}

    def test_response_is_exact_wire_format(self, server, exchange):
        raw = exchange(server, b"GET / HTTP/1.1\r\n\r\n")
        assert raw == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 5\r\n"
            b"\r\n"
            b"index"
        )


class TestRejectedRequests:
    """Requests answered by the server itself."""

    def test_no_route(self, server, exchange, response_parser):
        """GET /nope is 404 naming the path."""
        status, headers, body = response_parser(exchange(server, b"GET /nope HTTP/1.1\r\n\r\n"))

        assert status == 404
        assert body == b"No route matches /nope"
        assert headers["Content-Type"] == "text/plain"

    def test_wrong_method_is_404(self, server, exchange, response_parser):
        status, _, _ = response_parser(exchange(server, b"DELETE /user/42 HTTP/1.1\r\n\r\n"))
        assert status == 404

    def test_unknown_method_is_404(self, server, exchange, response_parser):
        status, _, body = response_parser(exchange(server, b"BREW / HTTP/1.1\r\n\r\n"))
        assert status == 404
        assert body == b"No route matches /"

    def test_malformed_request_line(self, server, exchange, response_parser):
        status, _, body = response_parser(exchange(server, b"GARBAGE\r\n\r\n"))

        assert status == 400
        assert body == b"MalformedRequestLine: Invalid request header"

    def test_missing_path(self, server, exchange, response_parser):
        status, _, body = response_parser(exchange(server, b"GET  HTTP/1.1\r\n\r\n"))

        assert status == 400
        assert body.startswith(b"MissingPathOrMethod: ")

    def test_oversized_request(self, config, exchange, response_parser):
        """More than max_request_bytes is 413, no handler runs."""
        server = HTTPServer(config.with_overrides(max_request_bytes=64))
        request = b"POST /echo HTTP/1.1\r\n\r\n" + b"x" * 200

        status, _, body = response_parser(exchange(server, request))

        assert status == 413
        assert body.startswith(b"PayloadTooLarge: ")

    def test_empty_request_closes_silently(self, server, exchange):
        """A client that sends nothing gets nothing back."""
        assert exchange(server, b"") == b""

    def test_read_timeout(self, config, connection_pair, response_parser):
        """No bytes before the deadline is 408."""
        server = HTTPServer(config.with_overrides(read_timeout=0.2))
        client, conn = connection_pair(read_timeout=0.2)

        server.handle_connection(conn)

        status, _, body = response_parser(client.recv(4096))
        assert status == 408
        assert body.startswith(b"RequestTimeout: ")
        assert conn.closed


class TestHandlerBehaviour:
    """Handler faults and handlers that write nothing."""

    def test_handler_exception_propagates_after_close(self, server, connection_pair):
        client, conn = connection_pair()
        client.sendall(b"GET /boom HTTP/1.1\r\n\r\n")
        client.shutdown(socket.SHUT_WR)

        with pytest.raises(RuntimeError, match="handler exploded"):
            server.handle_connection(conn)

        assert conn.state == ConnectionState.CLOSED
        assert client.recv(4096) == b""

    def test_handler_writing_nothing_is_logged(self, server, exchange, caplog):
        with caplog.at_level(logging.WARNING, logger="simplehttpd.server"):
            raw = exchange(server, b"GET /silent HTTP/1.1\r\n\r\n")

        assert raw == b""
        assert "wrote no response" in caplog.text
        assert "/silent" in caplog.text

    def test_params_set_on_request(self, config, exchange):
        from simplehttpd.http import Router

        seen = {}
        router = Router()

        @router.get("/a/:x/b/:y")
        def capture(request, conn):
            seen.update(request.params)
            conn.respond(200)

        exchange(HTTPServer(config.with_overrides(routes=router.freeze())), b"GET /a/1/b/2 HTTP/1.1\r\n\r\n")
        assert seen == {"x": "1", "y": "2"}

    def test_connection_always_closed(self, server, connection_pair):
        for request in (b"GET / HTTP/1.1\r\n\r\n", b"GET /nope HTTP/1.1\r\n\r\n", b"X\r\n\r\n", b""):
            client, conn = connection_pair()
            client.sendall(request)
            client.shutdown(socket.SHUT_WR)
            server.handle_connection(conn)
            assert conn.closed


class TestAccessLog:
    """Access records for exchanges that produced a response."""

    def test_text_record(self, server, exchange, caplog):
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            exchange(server, b"GET /user/7 HTTP/1.1\r\n\r\n")

        records = [r for r in caplog.records if r.name == "simplehttpd.access"]
        assert len(records) == 1
        assert '"GET /user/7" 200' in records[0].getMessage()

    def test_json_record(self, config, exchange, caplog):
        server = HTTPServer(config.with_overrides(log_format="json"))
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            exchange(server, b"GET /nope HTTP/1.1\r\n\r\n")

        record = [r for r in caplog.records if r.name == "simplehttpd.access"][0]
        entry = json.loads(record.getMessage())
        assert entry["method"] == "GET"
        assert entry["path"] == "/nope"
        assert entry["status_code"] == 404
        assert entry["bytes_sent"] > 0

    def test_parse_failure_logged_without_request(self, server, exchange, caplog):
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            exchange(server, b"GARBAGE\r\n\r\n")

        record = [r for r in caplog.records if r.name == "simplehttpd.access"][0]
        assert '"- -" 400' in record.getMessage()

    def test_no_record_without_response(self, server, exchange, caplog):
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            exchange(server, b"")
            exchange(server, b"GET /silent HTTP/1.1\r\n\r\n")

        assert not [r for r in caplog.records if r.name == "simplehttpd.access"]

    def test_disabled(self, config, exchange, caplog):
        server = HTTPServer(config.with_overrides(access_log=False))
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            exchange(server, b"GET / HTTP/1.1\r\n\r\n")

        assert not [r for r in caplog.records if r.name == "simplehttpd.access"]


class TestPreformattedResponses:
    """Handlers that write bytes built with format_response."""

    @pytest.fixture
    def raw_server(self, config):
        from simplehttpd.http import HTTPStatus, Router, format_response

        router = Router()

        @router.get("/raw")
        def raw(request, conn):
            conn.send_response(format_response(HTTPStatus.OK, "raw"))

        return HTTPServer(config.with_overrides(routes=router.freeze()))

    def test_counts_as_responded(self, raw_server, connection_pair):
        client, conn = connection_pair()
        client.sendall(b"GET /raw HTTP/1.1\r\n\r\n")
        client.shutdown(socket.SHUT_WR)

        raw_server.handle_connection(conn)

        assert conn.responded
        assert conn.responses_sent == 1
        assert conn.response_status == 200
        assert client.recv(4096).endswith(b"\r\n\r\nraw")

    def test_no_warning_and_access_record(self, raw_server, exchange, caplog):
        with caplog.at_level(logging.INFO):
            raw = exchange(raw_server, b"GET /raw HTTP/1.1\r\n\r\n")

        assert raw.startswith(b"HTTP/1.1 200 OK\r\n")
        assert "wrote no response" not in caplog.text
        records = [r for r in caplog.records if r.name == "simplehttpd.access"]
        assert len(records) == 1
        assert '"GET /raw" 200' in records[0].getMessage()

    def test_bytes_without_status_line(self, connection_pair):
        _, conn = connection_pair()

        assert conn.send_response(b"not http")
        assert conn.responded
        assert conn.response_status is None
