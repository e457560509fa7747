"""
Unit tests for access-log records.
"""

import json
import logging

from simplehttpd.access_log import RequestLog, log_exchange


def make_entry(**overrides) -> RequestLog:
    fields = dict(
        connection_id="a1b2c3d4",
        method="GET",
        path="/user/42",
        client_ip="127.0.0.1",
        status_code=200,
        bytes_sent=45,
        duration_ms=3.14159,
        timestamp="10/Jun/2024:10:55:36 +0000",
    )
    fields.update(overrides)
    return RequestLog(**fields)


class TestRequestLog:
    """Tests for RequestLog formatting."""

    def test_to_text(self):
        assert make_entry().to_text() == (
            '127.0.0.1 - - [10/Jun/2024:10:55:36 +0000] "GET /user/42" 200 45 3.14ms'
        )

    def test_to_dict_rounds_duration(self):
        entry = make_entry().to_dict()
        assert entry["duration_ms"] == 3.14
        assert entry["status_code"] == 200
        assert set(entry) == {
            "connection_id", "method", "path", "client_ip",
            "status_code", "bytes_sent", "duration_ms", "timestamp",
        }

    def test_from_exchange_without_request(self, connection_pair):
        _, conn = connection_pair()
        entry = RequestLog.from_exchange(conn)

        assert entry.method == "-"
        assert entry.path == "-"
        assert entry.client_ip == "127.0.0.1"
        assert entry.status_code == 0
        assert entry.bytes_sent == 0


class TestLogExchange:
    """Tests for log_exchange."""

    def test_text(self, caplog):
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            log_exchange(make_entry())

        assert caplog.records[-1].name == "simplehttpd.access"
        assert '"GET /user/42" 200' in caplog.records[-1].getMessage()

    def test_json(self, caplog):
        with caplog.at_level(logging.INFO, logger="simplehttpd.access"):
            log_exchange(make_entry(status_code=404), log_format="json")

        assert json.loads(caplog.records[-1].getMessage())["status_code"] == 404

    def test_level_disabled(self, caplog):
        with caplog.at_level(logging.WARNING, logger="simplehttpd.access"):
            log_exchange(make_entry())

        assert not [r for r in caplog.records if r.name == "simplehttpd.access"]
