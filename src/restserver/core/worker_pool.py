"""
=============================================================================
WORKER POOL
=============================================================================

A fixed number of worker threads that take connections off the job queue
and run the connection handler on them.

=============================================================================
WHY A FIXED POOL?
=============================================================================

The multiplexer never reads a request itself; it only notices that a
socket is readable. The actual reading, framing and responding happens on
a worker. Thread-per-connection would need one thread for every idle
client, which is what the readiness wait exists to avoid. Instead:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          Worker Pool                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Multiplexer ──put()──►  ┌──────────────┐                          │
    │                           │  Job Queue   │                          │
    │                           │  [c1][c2][c3]│                          │
    │                           └──────┬───────┘                          │
    │                                  │ get()                             │
    │              ┌───────────────────┼───────────────────┐              │
    │              ▼                   ▼                   ▼              │
    │        ┌──────────┐        ┌──────────┐        ┌──────────┐         │
    │        │ Worker-0 │        │ Worker-1 │        │ Worker-2 │         │
    │        │  handler │        │  handler │        │  handler │         │
    │        └──────────┘        └──────────┘        └──────────┘         │
    │                                                                      │
    │   Idle workers block in get(); a blocked thread costs nothing.      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import threading
import time
import logging
from typing import Callable, Optional
from enum import Enum

from .connection import Connection
from .job_queue import JobQueue


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """
    Worker thread states.

    Used for monitoring and debugging the pool.
    """
    IDLE = "idle"        # Waiting for a connection
    BUSY = "busy"        # Running the handler
    STOPPED = "stopped"  # Thread exited


class Worker(threading.Thread):
    """
    Worker thread that processes connections from the job queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Worker Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. conn = job_queue.get()          (blocks)                        │
    │          │                                                           │
    │          ├── None → queue closed, exit loop                          │
    │          │                                                           │
    │   2. handler(conn)                                                   │
    │          │                                                           │
    │          └── exceptions are logged, the worker keeps running        │
    │                                                                      │
    │   3. back to 1                                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        job_queue: JobQueue,
        handler: Callable[[Connection], None],
        worker_id: int,
    ):
        # daemon=True: a stuck worker never keeps the process alive
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.job_queue = job_queue
        self.handler = handler
        self.worker_id = worker_id

        self.state = WorkerState.IDLE

        # Metrics
        self.jobs_completed = 0
        self.jobs_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            conn = self.job_queue.get()
            if conn is None:
                break
            self._execute(conn)

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, conn: Connection):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            self.handler(conn)
            elapsed = time.time() - start_time
            logger.debug(f"Worker {self.worker_id} handled [{conn.id}] in {elapsed:.3f}s")
            self.jobs_completed += 1

        except Exception as e:
            # One bad connection must not take the worker down with it
            logger.exception(f"Worker {self.worker_id} failed on [{conn.id}]: {e}")
            self.jobs_failed += 1

        finally:
            self.state = WorkerState.IDLE


class WorkerPool:
    """
    Fixed-size pool of worker threads fed by a JobQueue.

    Usage:

        pool = WorkerPool(job_queue, handle_connection, size=3)
        pool.start()
        ...
        pool.shutdown()   # closes the queue, joins every worker
    """

    def __init__(
        self,
        job_queue: JobQueue,
        handler: Callable[[Connection], None],
        size: int = 3,
    ):
        if size < 1:
            raise ValueError("size must be >= 1")

        self.job_queue = job_queue
        self.handler = handler
        self.size = size

        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False

    def start(self):
        """Start all worker threads."""
        with self._lock:
            if self._started:
                return

            logger.info(f"Starting worker pool with {self.size} workers")

            for worker_id in range(self.size):
                worker = Worker(self.job_queue, self.handler, worker_id)
                self._workers.append(worker)
                worker.start()

            self._started = True

    def shutdown(self, timeout: Optional[float] = 5.0):
        """
        Stop the pool.

        Closes the job queue (workers finish what is queued, then receive
        None and exit) and joins every worker thread.

        Args:
            timeout: Seconds to wait for each worker to exit.
        """
        with self._lock:
            if not self._started:
                return

            logger.info("Shutting down worker pool...")
            self.job_queue.close()

            for worker in self._workers:
                worker.join(timeout=timeout)
                if worker.is_alive():
                    logger.warning(f"Worker {worker.worker_id} did not stop within {timeout}s")

            self._workers.clear()
            self._started = False

        logger.info("Worker pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def stats(self) -> dict:
        """Worker and job counts for logs and tests."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "jobs": {
                "queued": self.job_queue.qsize(),
                "completed": sum(w.jobs_completed for w in self._workers),
                "failed": sum(w.jobs_failed for w in self._workers),
            },
        }
