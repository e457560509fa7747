"""
=============================================================================
ACCESS LOG
=============================================================================

One record per request-response exchange, on the "simplehttpd.access"
logger.

    TEXT FORMAT (default, combined-log style):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [10/Jun/2024:10:55:36 +0000] "GET /user/42" 200 45 3ms│
    │ ───────────────────────────────────────────────────────────────────│
    │ IP          Timestamp          Method/Path   Status Size Duration  │
    └─────────────────────────────────────────────────────────────────────┘

    JSON FORMAT (for log aggregators):
    {"connection_id": "a1b2c3d4", "method": "GET", "path": "/user/42",
     "client_ip": "127.0.0.1", "status_code": 200, "bytes_sent": 45,
     "duration_ms": 3.12, "timestamp": "10/Jun/2024:10:55:36 +0000"}

The logger is namespaced so it can be routed on its own:

    logging.getLogger("simplehttpd.access").addHandler(file_handler)

=============================================================================
"""

import json
import time
import logging
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .core.connection import Connection
    from .http.request import IncomingRequest


logger = logging.getLogger("simplehttpd.access")


@dataclass
class RequestLog:
    """
    Structured access-log entry.

    Fields:
        connection_id:  Connection.id, matches the server log lines
        method:         Method token as sent ("-" if the request never parsed)
        path:           Request target ("-" if the request never parsed)
        client_ip:      Peer address
        status_code:    Status of the response written (0 if none)
        bytes_sent:     Size of the response, headers included
        duration_ms:    Accept to close
        timestamp:      When the record was built
    """

    connection_id: str
    method: str
    path: str
    client_ip: str
    status_code: int
    bytes_sent: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "method": self.method,
            "path": self.path,
            "client_ip": self.client_ip,
            "status_code": self.status_code,
            "bytes_sent": self.bytes_sent,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.bytes_sent} {self.duration_ms:.2f}ms'
        )

    @classmethod
    def from_exchange(
        cls,
        conn: "Connection",
        request: Optional["IncomingRequest"] = None,
    ) -> "RequestLog":
        return cls(
            connection_id=conn.id,
            method=request.raw_method if request is not None else "-",
            path=request.path if request is not None else "-",
            client_ip=conn.client_ip,
            status_code=conn.response_status or 0,
            bytes_sent=conn.bytes_sent,
            duration_ms=conn.age * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )


def log_exchange(entry: RequestLog, log_format: str = "text", level: int = logging.INFO):
    """Emit one access record in the configured format."""
    if not logger.isEnabledFor(level):
        return
    if log_format == "json":
        logger.log(level, json.dumps(entry.to_dict()))
    else:
        logger.log(level, entry.to_text())
