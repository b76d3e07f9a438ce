"""
=============================================================================
JOB QUEUE
=============================================================================

Bounded FIFO of connections that have data waiting and need a worker.

    multiplexer                                          workers
    ───────────                                          ───────
    put(conn) ──►  [ conn_a | conn_b | conn_c ]  ──► get() → conn_a
                     front                back

Producer/consumer on one lock with two conditions (not_empty, not_full):

- put() notifies ONE consumer, and only when the queue goes from empty to
  non-empty. If it already held items, a consumer is already awake and
  will come back for the next one.
- get() that leaves items behind passes the wake-up on to one more
  consumer, so a burst of puts still fans out across idle workers.
- close() wakes everyone; get() then drains what is left and returns None,
  the "poison pill" a worker exits on.

No deduplication happens here. A connection can only be enqueued again
after a worker has released it (see Connection.claim()).
=============================================================================
"""

import queue
import threading
import time
from collections import deque
from typing import Deque, Optional

from .connection import Connection


class JobQueue:
    """Bounded FIFO with blocking dequeue."""

    def __init__(self, maxsize: int = 1024):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self.maxsize = maxsize
        self._items: Deque[Connection] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        self._closed = False

    def put(self, conn: Connection, timeout: Optional[float] = None) -> None:
        """
        Append a connection at the back of the queue.

        Blocks while the queue is full.

        Raises:
            queue.Full: If the queue is still full after timeout seconds.
            RuntimeError: If the queue has been closed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._lock:
            while len(self._items) >= self.maxsize and not self._closed:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise queue.Full
                self._not_full.wait(remaining)

            if self._closed:
                raise RuntimeError("Job queue is closed")

            was_empty = not self._items
            self._items.append(conn)
            if was_empty:
                self._not_empty.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[Connection]:
        """
        Remove and return the connection at the front of the queue.

        Blocks until one is available.

        Returns:
            The front connection, or None once the queue is closed and empty.

        Raises:
            queue.Empty: If nothing arrived within timeout seconds.
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._lock:
            while not self._items and not self._closed:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    raise queue.Empty
                self._not_empty.wait(remaining)

            if not self._items:
                return None

            was_full = len(self._items) >= self.maxsize
            conn = self._items.popleft()

            if self._items:
                self._not_empty.notify()
            if was_full:
                self._not_full.notify()

            return conn

    def close(self) -> None:
        """Stop accepting jobs and wake every waiting thread."""
        with self._lock:
            self._closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.qsize()
