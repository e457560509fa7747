"""
=============================================================================
THREAD POOL
=============================================================================

A fixed set of worker threads pulling tasks from a bounded queue. Backs
the POOL concurrency mode.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Thread Pool                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   submit(func, args)                                                 │
    │        │                                                             │
    │        ├── queue has space → enqueued, returns True                  │
    │        └── queue full      → returns False (caller answers 503)      │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │ TASK QUEUE  queue.Queue(maxsize=queue_size)                 │   │
    │   │ [Task] [Task] [Task] ...                                    │   │
    │   └──────────────────────┬──────────────────────────────────────┘   │
    │                          │ get()                                     │
    │                          ▼                                           │
    │   ┌──────────┐ ┌──────────┐ ┌──────────┐ ┌──────────┐               │
    │   │ Worker 0 │ │ Worker 1 │ │ Worker 2 │ │ Worker 3 │  num_workers   │
    │   └──────────┘ └──────────┘ └──────────┘ └──────────┘               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The number of threads never changes after start(), so memory use is
predictable: num_workers stacks plus queue_size queued tasks, whatever the
load.

=============================================================================
SHUTDOWN
=============================================================================

Workers exit on a "poison pill" (None) taken from the queue:

    pool.shutdown(wait=True)
        └─ stop accepting tasks
        └─ wait until queued tasks are done   (wait=True)
           or take them out and return them   (wait=False)
        └─ one None per worker
        └─ join workers

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, List, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, for monitoring."""
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred function call.

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        submitted_at: Time the task was queued, for wait-time logging.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.monotonic)

    def run(self):
        return self.func(*self.args, **self.kwargs)


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Worker Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Wait for a task (get with poll_interval timeout)               │
    │   2. None → exit                                                     │
    │   3. Run the task                                                    │
    │        └── exception → logged with traceback, worker keeps going    │
    │   4. task_done(), back to 1                                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        task_queue: "queue.Queue[Optional[Task]]",
        worker_id: int,
        poll_interval: float = 1.0,
        name_prefix: str = "Worker",
    ):
        # daemon=True: a stuck handler cannot keep the process alive
        super().__init__(name=f"{name_prefix}-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.poll_interval = poll_interval

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """
        Run one task inside the fault boundary.

        Any exception the task raises is logged with its traceback and
        counted; it never ends the worker.
        """
        self.state = WorkerState.BUSY
        start_time = time.monotonic()
        waited = start_time - task.submitted_at

        try:
            task.run()
            self.tasks_completed += 1
            logger.debug(
                f"Worker {self.worker_id} completed task in "
                f"{time.monotonic() - start_time:.3f}s (queued {waited:.3f}s)"
            )
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(
                f"Worker {self.worker_id} task failed after "
                f"{time.monotonic() - start_time:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop after its current task."""
        self._shutdown.set()


class ThreadPool:
    """
    Fixed-size thread pool with a bounded task queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   pool = ThreadPool(num_workers=8, queue_size=64)                   │
    │   pool.start()                                                       │
    │                                                                      │
    │   if not pool.submit(handle_connection, args=(conn,)):              │
    │       reject(conn)                       # queue full                │
    │                                                                      │
    │   print(pool.stats)                                                  │
    │   pool.shutdown(wait=True)                                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        num_workers: int = 4,
        queue_size: int = 100,
        poll_interval: float = 1.0,
        name_prefix: str = "Worker",
    ):
        """
        Args:
            num_workers: Number of worker threads started by start().
            queue_size: Tasks allowed to wait for a worker. submit() refuses
                        tasks beyond this.
            poll_interval: Seconds an idle worker blocks before re-checking
                           its shutdown flag.
            name_prefix: Thread name prefix, shown in log records.
        """
        if num_workers < 1:
            raise ValueError("num_workers must be >= 1")
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        self.num_workers = num_workers
        self.max_queue_size = queue_size
        self.poll_interval = poll_interval
        self.name_prefix = name_prefix

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)

        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False

    def start(self):
        """Start the worker threads. Calling it twice is a no-op."""
        with self._lock:
            if self._started:
                return

            logger.info(f"Starting thread pool with {self.num_workers} workers")
            for worker_id in range(self.num_workers):
                worker = Worker(
                    task_queue=self._task_queue,
                    worker_id=worker_id,
                    poll_interval=self.poll_interval,
                    name_prefix=self.name_prefix,
                )
                self._workers.append(worker)
                worker.start()

            self._started = True
            self._shutdown = False

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
    ) -> bool:
        """
        Queue a task without blocking.

        Returns:
            True if the task was queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})
        try:
            self._task_queue.put_nowait(task)
        except queue.Full:
            return False
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> List[Task]:
        """
        Stop the pool.

        Args:
            wait: Run every queued task before stopping. With False, queued
                  tasks are taken out of the queue unrun and returned.
            timeout: Upper bound, in seconds, on the wait for queued tasks.
                     Whatever is still queued after it is returned unrun.

        Returns:
            Tasks that were queued but never run.
        """
        with self._lock:
            if not self._started:
                return []
            self._shutdown = True

        logger.info("Shutting down thread pool...")

        if wait:
            deadline = None if timeout is None else time.monotonic() + timeout
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.monotonic() > deadline:
                    logger.warning("Shutdown timeout, abandoning queued tasks")
                    break
                time.sleep(0.05)

        abandoned = self._drain()

        # Workers are consuming, so blocking puts always find room
        for _ in self._workers:
            self._task_queue.put(None)

        for worker in self._workers:
            worker.shutdown()
            worker.join(timeout=2.0)

        with self._lock:
            self._workers.clear()
            self._started = False

        if abandoned:
            logger.warning(f"{len(abandoned)} queued tasks were never run")
        logger.info("Thread pool shutdown complete")
        return abandoned

    def _drain(self) -> List[Task]:
        drained = []
        while True:
            try:
                task = self._task_queue.get_nowait()
            except queue.Empty:
                return drained
            self._task_queue.task_done()
            if task is not None:
                drained.append(task)

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._started and not self._shutdown

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queue_size(self) -> int:
        """Tasks currently waiting for a worker."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts, for health checks and debugging."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
