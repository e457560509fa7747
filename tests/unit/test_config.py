"""
Unit tests for server configuration.
"""

import dataclasses
import logging

import pytest

from simplehttpd.config import ConcurrencyMode, ServerConfig
from simplehttpd.http.request import Method
from simplehttpd.http.router import Route, RouteTable, Router


def handler(request, conn):
    pass


class TestServerConfig:
    """Tests for ServerConfig defaults and coercion."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "127.0.0.1"
        assert config.port == 8080
        assert config.max_request_bytes == 4096
        assert config.concurrency_mode is ConcurrencyMode.THREAD
        assert config.read_timeout == 30.0
        assert isinstance(config.routes, RouteTable)
        assert len(config.routes) == 0
        assert config.logger is logging.getLogger("simplehttpd.server")
        config.validate()

    def test_frozen(self):
        config = ServerConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.port = 9000

    def test_router_is_frozen_into_table(self):
        router = Router()
        router.add_route("/", handler)
        config = ServerConfig(routes=router)

        assert isinstance(config.routes, RouteTable)
        assert config.routes.match(Method.GET, "/") is not None

    def test_route_sequence_accepted(self):
        config = ServerConfig(routes=[Route("/a", Method.GET, handler)])
        assert len(config.routes) == 1

    def test_mode_from_string(self):
        assert ServerConfig(concurrency_mode="POOL").concurrency_mode is ConcurrencyMode.POOL

    def test_log_settings_normalized(self):
        config = ServerConfig(log_level="debug", log_format="JSON")
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_with_overrides(self):
        base = ServerConfig(port=1234)
        changed = base.with_overrides(port=0, max_workers=2)

        assert base.port == 1234
        assert changed.port == 0
        assert changed.max_workers == 2
        assert changed.routes is base.routes


class TestValidate:
    """Tests for fail-fast validation."""

    def test_port_zero_allowed(self):
        """Port 0 asks the OS for a free port."""
        ServerConfig(port=0).validate()
        ServerConfig(port=65535).validate()

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 65536},
        {"backlog": 0},
        {"max_request_bytes": 0},
        {"read_timeout": 0},
        {"read_timeout": -1.0},
        {"max_workers": 0},
        {"queue_size": 0},
        {"admission_timeout": -1},
        {"accept_poll_interval": 0},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_read_timeout_none_allowed(self):
        ServerConfig(read_timeout=None).validate()


class TestFromEnv:
    """Tests for environment configuration."""

    def test_defaults_without_env(self, monkeypatch):
        for name in ("HTTP_HOST", "HTTP_PORT", "HTTP_MODE", "HTTP_WORKERS",
                     "HTTP_MAX_REQUEST_BYTES", "HTTP_READ_TIMEOUT",
                     "HTTP_LOG_LEVEL", "HTTP_LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()
        assert config.port == 8080
        assert config.concurrency_mode is ConcurrencyMode.THREAD
        assert config.read_timeout == 30.0

    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("HTTP_HOST", "0.0.0.0")
        monkeypatch.setenv("HTTP_PORT", "3000")
        monkeypatch.setenv("HTTP_MODE", "inline")
        monkeypatch.setenv("HTTP_WORKERS", "8")
        monkeypatch.setenv("HTTP_MAX_REQUEST_BYTES", "1024")
        monkeypatch.setenv("HTTP_READ_TIMEOUT", "2.5")
        monkeypatch.setenv("HTTP_LOG_LEVEL", "debug")
        monkeypatch.setenv("HTTP_LOG_FORMAT", "json")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 3000
        assert config.concurrency_mode is ConcurrencyMode.INLINE
        assert config.max_workers == 8
        assert config.max_request_bytes == 1024
        assert config.read_timeout == 2.5
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    @pytest.mark.parametrize("value", ["none", "0", ""])
    def test_read_timeout_disabled(self, monkeypatch, value):
        monkeypatch.setenv("HTTP_READ_TIMEOUT", value)
        assert ServerConfig.from_env().read_timeout is None

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("HTTP_PORT", "3000")
        router = Router()
        router.add_route("/", handler)

        config = ServerConfig.from_env(routes=router, port=0)

        assert config.port == 0
        assert len(config.routes) == 1

    def test_bad_mode(self, monkeypatch):
        monkeypatch.setenv("HTTP_MODE", "fork")
        with pytest.raises(ValueError):
            ServerConfig.from_env()
