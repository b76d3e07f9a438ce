"""
=============================================================================
MULTIPLEXER (EVENT LOOP)
=============================================================================

The single thread that watches every socket at once and decides which ones
need a worker. It never reads request bytes itself.

=============================================================================
WHY poll()?
=============================================================================

With a blocking accept()/recv() per thread, every idle client pins a
thread. A readiness wait instead asks the kernel one question about MANY
sockets:

    "Which of these have data waiting (or a pending connection)?"

    poller = select.poll()
    poller.register(fd, POLLIN | POLLPRI)
    events = poller.poll(timeout_ms)      # [(fd, event_mask), ...]

Only the sockets that came back readable are handed to a worker.

select.select() would answer the same question, but it cannot watch a
descriptor numbered FD_SETSIZE (1024) or above. Once the process holds
that many sockets EVERY call fails, and the whole server stops serving.
poll() has no such ceiling.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       EVENT MASK → ACTION                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   POLLPRI, POLLERR, POLLNVAL       exceptional → close + deregister  │
    │   POLLHUP without POLLIN           exceptional → close + deregister  │
    │   POLLIN (incl. POLLIN | POLLHUP)  readable    → claim + enqueue     │
    │                                                                      │
    │   A hang-up that still has bytes waiting goes to a worker, so the   │
    │   last pipelined requests are answered before the close is seen.   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ONE ITERATION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Multiplexer Loop                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. watched = [listener] + registry.idle_connections()              │
    │          └── connections owned by a worker are NOT watched          │
    │                                                                      │
    │   2. poll(watched, select_timeout)                                   │
    │          └── timeout is not an error, loop again                    │
    │                                                                      │
    │   3. listener readable → accept() → registry.add(Connection)         │
    │          └── accept failure is logged, loop continues               │
    │                                                                      │
    │   4. connection exceptional → mark for deletion, skip it            │
    │                                                                      │
    │   5. connection readable → claim() → job_queue.put()                 │
    │                                                                      │
    │   6. delete everything marked in step 4                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY A SHORT TIMEOUT?
=============================================================================

When a worker finishes with a connection it calls release(), but the
multiplexer may already be sitting in poll() with a set that did not
include that connection. It only picks the connection up again on the
next iteration. A short timeout (50 ms by default) bounds that delay. An
unbounded wait would leave released connections unwatched until some
OTHER socket happened to become ready.

=============================================================================
SIGNAL HANDLING FOR GRACEFUL SHUTDOWN
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, systemd) stop the loop instead
of killing the process, so the server can join its workers and close its
sockets. Python only allows signal handlers in the main thread; when the
loop runs elsewhere (tests), shutdown() is called directly instead.

=============================================================================
"""

import select
import socket
import signal
import logging
import threading
from typing import Dict, List, Optional, Tuple

from ..config import ServerConfig
from ..http.framer import RequestFramer
from .connection import Connection
from .job_queue import JobQueue
from .registry import ConnectionRegistry


logger = logging.getLogger(__name__)


_WATCH_MASK = select.POLLIN | select.POLLPRI

_FAILURE_MASK = select.POLLPRI | select.POLLERR | select.POLLNVAL


def _is_exceptional(mask: int) -> bool:
    """Urgent data, a socket error, a stale fd, or a hang-up with nothing left to read."""
    if mask & _FAILURE_MASK:
        return True
    return bool(mask & select.POLLHUP) and not mask & select.POLLIN


class Multiplexer:
    """
    Readiness loop over the listening socket and all idle connections.

    Usage:
        mux = Multiplexer(config, registry, job_queue)
        mux.bind()
        mux.serve_forever()   # Blocks until shutdown()
    """

    def __init__(
        self,
        config: ServerConfig,
        registry: ConnectionRegistry,
        job_queue: JobQueue,
    ):
        self.config = config
        self.registry = registry
        self.job_queue = job_queue

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._stop = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port once bound with port 0."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    # =========================================================================
    # LISTENING SOCKET
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Rebind immediately after a restart instead of waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # poll() said readable but the client may have reset before
        # accept(); a blocking accept() would then stall the whole loop.
        sock.setblocking(False)

        return sock

    def bind(self) -> None:
        """Create, bind and listen. Raises OSError if the address is taken."""
        if self._socket is not None:
            return

        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            sock.close()
            raise

        self._socket = sock

        host, port = self.address
        logger.info(f"Listening on {host}:{port}")

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # EVENT LOOP
    # =========================================================================

    def serve_forever(self) -> None:
        """
        Run the readiness loop until shutdown() is called.

        Binds first if bind() has not been called yet.
        """
        self.bind()
        self._running = True
        self._setup_signals()

        try:
            while not self._stop.is_set():
                self.poll_once()
        finally:
            self._running = False
            self._cleanup()

    def poll_once(self) -> None:
        """
        One readiness wait and the handling of everything it reported.

        Never raises for a single connection's failure; the loop must keep
        serving everyone else.
        """
        watched: List[Connection] = self.registry.idle_connections()
        listener_fd = self._socket.fileno()

        # POLLERR, POLLHUP and POLLNVAL are always reported
        poller = select.poll()
        poller.register(self._socket, select.POLLIN)
        for conn in watched:
            poller.register(conn, _WATCH_MASK)

        try:
            events = poller.poll(int(self.config.select_timeout * 1000))
        except OSError as e:
            logger.error(f"Readiness wait failed: {e}")
            return

        if not events:
            return

        reported: Dict[int, int] = dict(events)

        if reported.get(listener_fd, 0) & select.POLLIN:
            self._accept()

        to_delete: List[Connection] = []

        for conn in watched:
            mask = reported.get(conn.handle, 0)
            if not mask:
                continue

            if _is_exceptional(mask):
                logger.warning(
                    f"[{conn.id}] Exceptional condition on socket "
                    f"(events 0x{mask:x}), closing"
                )
                to_delete.append(conn)
                continue

            if mask & select.POLLIN:
                self._enqueue(conn)

        for conn in to_delete:
            self.registry.remove(conn)

    def _accept(self) -> None:
        try:
            client_socket, client_address = self._socket.accept()
        except BlockingIOError:
            return  # Client went away between poll() and accept()
        except OSError as e:
            logger.error(f"Accept failed: {e}")
            return

        # Accepted sockets inherit non-blocking mode on some platforms
        client_socket.setblocking(True)
        try:
            client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass  # Not supported on this socket type

        conn = Connection(
            socket=client_socket,
            address=client_address,
            framer=RequestFramer(
                max_line_size=self.config.buffer_size,
                max_body_size=self.config.max_body_size,
                read_size=self.config.buffer_size,
            ),
            send_timeout=self.config.send_timeout,
        )
        self.registry.add(conn)

        logger.debug(
            f"[{conn.id}] New client from {conn.client_ip}:{conn.client_port} "
            f"(fd {conn.handle}, {len(self.registry)} active)"
        )

    def _enqueue(self, conn: Connection) -> None:
        if not conn.claim():
            return  # Already owned by a worker

        try:
            self.job_queue.put(conn)
        except RuntimeError:
            # Queue closed: the server is shutting down
            self.registry.remove(conn)

    def shutdown(self) -> None:
        """
        Stop the loop after the current iteration. Safe to call from any
        thread or a signal handler, and more than once.
        """
        if not self._stop.is_set():
            logger.info("Shutting down multiplexer...")
        self._stop.set()

    def _cleanup(self) -> None:
        self._restore_signals()

        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        logger.info("Multiplexer stopped")
