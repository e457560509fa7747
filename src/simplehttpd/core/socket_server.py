"""
=============================================================================
TCP LISTENER
=============================================================================

Owns the listening socket: bind, listen, accept, hand off.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Client A ──┐                                                       │
    │              │      ┌────────────────┐     ┌────────────────────┐    │
    │   Client B ──┼─────►│ listening sock │────►│ callback(conn)     │    │
    │              │      │ accept() loop  │     │ (the dispatcher)   │    │
    │   Client C ──┘      └────────────────┘     └────────────────────┘    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FAILURE RULES
=============================================================================

    bind() fails   → FATAL. Logged at CRITICAL, BindError raised, the accept
                     loop is never entered.

    accept() fails → NOT fatal. Logged at ERROR, nothing is dispatched, the
                     loop continues after a short pause.

    callback fails → NOT fatal. Logged with traceback, the loop continues.

=============================================================================
STOPPING
=============================================================================

accept() is given a timeout (accept_poll_interval) so the loop wakes up
regularly and sees a shutdown request:

    while running:
        try:
            accept()          # blocks for at most accept_poll_interval
        except timeout:
            continue          # re-check running, loop again

shutdown() may be called from any thread, or from a SIGINT/SIGTERM handler
when the server runs on the main thread.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)

# Pause after a failed accept() so a persistent error (e.g. EMFILE) does not
# turn the loop into a busy spin.
_ACCEPT_ERROR_BACKOFF = 0.05


class BindError(OSError):
    """The listening socket could not be bound to its address."""


class SocketServer:
    """
    Low-level TCP listener.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(callback)                                                   │
    │        ├──► _create_socket()   SO_REUSEADDR, TCP_NODELAY, timeout    │
    │        ├──► bind()             failure → CRITICAL + BindError        │
    │        ├──► listen(backlog)                                          │
    │        ├──► _setup_signals()   main thread only                      │
    │        ├──► ready                                                    │
    │        └──► _accept_loop()     blocks until shutdown()               │
    │                                                                      │
    │    shutdown()                  any thread, idempotent                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config)
        server.start(dispatcher.dispatch)   # blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: Supplies host, port, backlog, accept_poll_interval,
                    read_timeout and the logger used for lifecycle events.

        The socket is not created until start().
        """
        self.config = config
        self.log = config.logger

        self._socket: Optional[socket.socket] = None
        self._running = False

        self._shutdown_event = threading.Event()
        self._startup_done = threading.Event()
        self._listening = False

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound address (ip, port).

        Once listening this comes from the socket itself, so a config port
        of 0 reports the port the OS picked.
        """
        sock = self._socket
        if sock is not None:
            try:
                name = sock.getsockname()
                return (name[0], name[1])
            except OSError:
                pass
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Restarting within TIME_WAIT must not fail with "Address already in use"
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses go out in one write; don't let Nagle hold them back
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(self.config.accept_poll_interval)
        return sock

    def _setup_signals(self):
        """
        Turn SIGTERM and SIGINT into a graceful shutdown.

        signal.signal() only works on the main thread, so when the server is
        run from a worker thread (tests, embedding) this is skipped.
        """
        if not self.config.handle_signals:
            return
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, leaving signal handlers alone")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            self.log.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept connections until shutdown().

        Args:
            connection_handler: Receives every accepted Connection. Owns it
                                from then on, including closing it.

        Raises:
            BindError: The address could not be bound. Nothing was accepted.
        """
        host, port = self.config.host, self.config.port
        self._shutdown_event.clear()
        self._startup_done.clear()
        self._listening = False

        self._socket = self._create_socket()
        try:
            self._socket.bind((host, port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            self.log.critical(f"Failed to bind to {host}:{port}: {e}")
            self._close_socket()
            self._startup_done.set()
            raise BindError(e.errno, f"Failed to bind to {host}:{port}: {e.strerror or e}") from e

        self._running = True
        self._listening = True
        self._setup_signals()

        bound_host, bound_port = self.address
        self.log.info(f"Server listening on {bound_host}:{bound_port}")
        self._startup_done.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections and hand each one to connection_handler.

        ┌─────────────────────────────────────────────────────────────────┐
        │   while running:                                                 │
        │       accept()                                                   │
        │         ├── timeout  → continue (check running again)            │
        │         ├── OSError  → ERROR log, pause, continue                │
        │         └── ok       → Connection(sock) → connection_handler()  │
        └─────────────────────────────────────────────────────────────────┘
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                self.log.error(f"Accept error: {e}")
                self._shutdown_event.wait(_ACCEPT_ERROR_BACKOFF)
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            try:
                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    read_timeout=self.config.read_timeout,
                )
                connection_handler(conn)
            except Exception as e:
                # The accept loop is the fault boundary for inline handling
                self.log.exception(f"Unhandled error for {client_address[0]}: {e}")

    def shutdown(self):
        """
        Ask the accept loop to stop.

        Safe from any thread and safe to call more than once. The loop exits
        within accept_poll_interval seconds.
        """
        if self._running:
            self.log.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _close_socket(self):
        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

    def _cleanup(self):
        self._running = False
        self._restore_signals()
        self._close_socket()
        self._shutdown_event.set()
        self.log.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Block until start() is listening (or has failed to bind).

        Returns:
            True if the server is accepting connections, False on bind
            failure or timeout.
        """
        self._startup_done.wait(timeout)
        return self._listening and self._running
