"""
=============================================================================
CONCURRENCY DISPATCH
=============================================================================

Decides which thread runs the connection handler for each accepted
connection. One dispatcher per ConcurrencyMode:

    ┌──────────┬──────────────────────────────────────────────────────────┐
    │ INLINE   │ the accept loop runs the handler itself                  │
    │          │ one connection at a time, no extra threads               │
    ├──────────┼──────────────────────────────────────────────────────────┤
    │ THREAD   │ one daemon thread per connection                         │
    │          │ at most max_workers alive (BoundedSemaphore)             │
    │          │ no slot within admission_timeout → 503, closed          │
    ├──────────┼──────────────────────────────────────────────────────────┤
    │ POOL     │ max_workers long-lived threads, bounded queue            │
    │          │ queue full → 503, closed                                 │
    └──────────┴──────────────────────────────────────────────────────────┘

=============================================================================
FAULT BOUNDARY
=============================================================================

Whatever thread runs the handler, an exception escaping it stops there:

    try:
        handle(conn)
    except Exception:
        logger.exception(...)      ← full traceback, on the server logger

The connection was already closed by the handler's `with conn:` block.
Other connections, the worker thread and the accept loop carry on.

=============================================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Set

from ..config import ConcurrencyMode, ServerConfig
from ..http.response import write_response
from ..http.status_codes import HTTPStatus
from .connection import Connection
from .thread_pool import ThreadPool


logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[Connection], None]

OVERLOAD_MESSAGE = "Server overloaded"


class Dispatcher(ABC):
    """
    Abstract base class for dispatchers.

    Subclasses implement dispatch(); start() and shutdown() default to
    no-ops for modes with nothing to manage.
    """

    mode: ConcurrencyMode

    def __init__(self, handler: ConnectionHandler, config: ServerConfig):
        self.handler = handler
        self.config = config
        self.log = config.logger

    def start(self):
        pass

    @abstractmethod
    def dispatch(self, conn: Connection):
        """Take ownership of conn and see that the handler runs for it."""

    def shutdown(self, wait: bool = True):
        pass

    def run_guarded(self, conn: Connection):
        """Run the handler for conn inside the fault boundary."""
        try:
            self.handler(conn)
        except Exception as e:
            self.log.exception(f"[{conn.id}] Unhandled error handling {conn.client_ip}: {e}")

    def reject(self, conn: Connection):
        """Answer 503 and close. Used when no worker can take conn."""
        self.log.warning(f"[{conn.id}] {OVERLOAD_MESSAGE}, rejecting {conn.client_ip}")
        with conn:
            write_response(conn, HTTPStatus.SERVICE_UNAVAILABLE, OVERLOAD_MESSAGE)


class InlineDispatcher(Dispatcher):
    """Runs every connection on the accept loop's own thread."""

    mode = ConcurrencyMode.INLINE

    def dispatch(self, conn: Connection):
        self.run_guarded(conn)


class ThreadDispatcher(Dispatcher):
    """
    One daemon thread per connection, bounded by a semaphore.

        accept ──► acquire slot (≤ admission_timeout)
                     ├── got it  → Thread(run_guarded, conn).start()
                     │               └── finally: release slot
                     └── timeout → 503 Server overloaded
    """

    mode = ConcurrencyMode.THREAD

    def __init__(self, handler: ConnectionHandler, config: ServerConfig):
        super().__init__(handler, config)
        self._slots = threading.BoundedSemaphore(config.max_workers)
        self._threads: Set[threading.Thread] = set()
        self._lock = threading.Lock()

    @property
    def active(self) -> int:
        """Connections currently being handled."""
        with self._lock:
            return len(self._threads)

    def dispatch(self, conn: Connection):
        if not self._slots.acquire(timeout=self.config.admission_timeout):
            self.reject(conn)
            return

        thread = threading.Thread(
            target=self._worker,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        with self._lock:
            self._threads.add(thread)

        try:
            thread.start()
        except RuntimeError as e:
            # "can't start new thread": the OS is out of threads
            with self._lock:
                self._threads.discard(thread)
            self._slots.release()
            self.log.error(f"[{conn.id}] Could not start worker thread: {e}")
            self.reject(conn)

    def _worker(self, conn: Connection):
        try:
            self.run_guarded(conn)
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())
            self._slots.release()

    def shutdown(self, wait: bool = True):
        if not wait:
            return
        with self._lock:
            threads = list(self._threads)
        if threads:
            logger.info(f"Waiting for {len(threads)} connection threads")
        for thread in threads:
            thread.join(timeout=5.0)


class PoolDispatcher(Dispatcher):
    """Hands connections to a fixed ThreadPool; a full queue means 503."""

    mode = ConcurrencyMode.POOL

    def __init__(self, handler: ConnectionHandler, config: ServerConfig):
        super().__init__(handler, config)
        self.pool = ThreadPool(
            num_workers=config.max_workers,
            queue_size=config.queue_size,
            name_prefix="pool",
        )

    def start(self):
        self.pool.start()

    def dispatch(self, conn: Connection):
        if not self.pool.submit(self.run_guarded, args=(conn,)):
            self.reject(conn)

    def shutdown(self, wait: bool = True):
        for task in self.pool.shutdown(wait=wait):
            conn = task.args[0]
            self.reject(conn)


_DISPATCHERS = {
    ConcurrencyMode.INLINE: InlineDispatcher,
    ConcurrencyMode.THREAD: ThreadDispatcher,
    ConcurrencyMode.POOL: PoolDispatcher,
}


def create_dispatcher(config: ServerConfig, handler: ConnectionHandler) -> Dispatcher:
    """Build the dispatcher for config.concurrency_mode."""
    return _DISPATCHERS[config.concurrency_mode](handler, config)
