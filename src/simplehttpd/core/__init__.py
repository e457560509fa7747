"""
=============================================================================
CORE: SOCKETS AND THREADS
=============================================================================

The transport side of the server. Nothing here knows about routes.

    socket_server.py   SocketServer: bind, listen, accept loop, shutdown
    connection.py      Connection: one client socket, one exchange, closed
    dispatch.py        Inline / Thread / Pool dispatchers, 503 on overload
    thread_pool.py     ThreadPool backing the POOL mode

=============================================================================
"""

from .socket_server import SocketServer, BindError
from .connection import Connection, ConnectionState
from .dispatch import (
    Dispatcher,
    InlineDispatcher,
    ThreadDispatcher,
    PoolDispatcher,
    create_dispatcher,
)
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "BindError",
    "Connection",
    "ConnectionState",
    "Dispatcher",
    "InlineDispatcher",
    "ThreadDispatcher",
    "PoolDispatcher",
    "create_dispatcher",
    "ThreadPool",
]
