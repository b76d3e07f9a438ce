"""
=============================================================================
CONNECTION
=============================================================================

One accepted client socket plus everything the server tracks about it.

=============================================================================
WHO OWNS A CONNECTION?
=============================================================================

Two kinds of threads touch connections: the single multiplexer thread that
runs poll(), and the worker threads that read, frame and respond. They
must never act on the same socket at the same time, so every connection
carries an OWNERSHIP FLAG:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        OWNERSHIP HAND-OFF                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   owned == False                        owned == True               │
    │   ──────────────                        ─────────────               │
    │   in the poll() set                     NOT in the poll() set       │
    │   only the multiplexer touches it       only one worker touches it  │
    │                                                                      │
    │          multiplexer: claim() ──────────────►                       │
    │                       (readable)         job queue ──► worker       │
    │                                                                      │
    │          ◄────────────────────────────── worker: release()          │
    │                                          (response sent)            │
    │                                                                      │
    │   On failure the worker closes the socket and removes it from the   │
    │   registry WITHOUT releasing: a dead connection must never come     │
    │   back into the poll() set.                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

claim() is a test-and-set under the connection's own lock, and is_owned
reads under the same lock, so the check and the set are one atomic step.

=============================================================================
READING AND WRITING
=============================================================================

receive() does ONE bounded recv(). It is only called after poll()
reported the socket readable, so it returns without blocking.

send_all() loops over send() because send() may write only part of the
buffer when the kernel send buffer is full:

    response = 1200 bytes
    send() → 800   offset = 800
    send() → 400   offset = 1200  done

=============================================================================
"""

import socket
import threading
import time
import logging
import uuid
from dataclasses import dataclass, field

from ..errors import TransportError
from ..http.framer import RequestFramer


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """
    Represents a client connection.

    Attributes:
        socket: The client socket (the I/O handle).
        address: Client's (ip, port) tuple.
        framer: Incremental parser holding this connection's parse state.
        id: Short identifier used in log lines.
        created_at: Timestamp when the connection was accepted.
        requests_handled: Number of responses sent on this connection.
    """

    socket: socket.socket
    address: tuple
    framer: RequestFramer = field(default_factory=RequestFramer)
    send_timeout: float = 30.0

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: float = field(default_factory=time.time)
    requests_handled: int = 0

    _owned: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _closed: bool = field(default=False, repr=False)

    def __post_init__(self):
        # Blocking mode: reads only happen after poll() says readable,
        # and writes may need to wait for the peer to drain its buffer.
        self.socket.settimeout(self.send_timeout)
        self._fd = self.socket.fileno()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def handle(self) -> int:
        """
        The socket's file descriptor, as it was when accepted.

        Stays valid as a registry key after the socket is closed.
        """
        return self._fd

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def closed(self) -> bool:
        return self._closed

    def fileno(self) -> int:
        """Let poll() register the connection object directly."""
        return self._fd

    # =========================================================================
    # OWNERSHIP
    # =========================================================================

    @property
    def is_owned(self) -> bool:
        with self._lock:
            return self._owned

    def claim(self) -> bool:
        """
        Atomically mark the connection as owned by a worker.

        Returns:
            True if this call took ownership, False if it was already owned.
        """
        with self._lock:
            if self._owned:
                return False
            self._owned = True
            return True

    def release(self) -> None:
        """Hand the connection back to the multiplexer."""
        with self._lock:
            self._owned = False

    # =========================================================================
    # I/O
    # =========================================================================

    def receive(self, max_bytes: int) -> bytes:
        """
        Read at most max_bytes from the socket.

        Returns:
            The bytes read. b"" means the peer closed the connection.

        Raises:
            TransportError: If recv() fails.
        """
        try:
            return self.socket.recv(max_bytes)
        except OSError as e:
            raise TransportError(f"recv failed: {e}") from e

    def send_all(self, data: bytes) -> None:
        """
        Write the whole buffer, resuming after every partial send().

        Raises:
            TransportError: If send() fails or times out.
        """
        view = memoryview(data)
        offset = 0
        while offset < len(view):
            try:
                sent = self.socket.send(view[offset:])
            except OSError as e:
                raise TransportError(f"send failed after {offset} bytes: {e}") from e
            if sent == 0:
                raise TransportError(f"send wrote nothing after {offset} bytes")
            offset += sent
            if offset < len(view):
                logger.debug(f"[{self.id}] Partial send {offset}/{len(view)} bytes")

    def reset(self) -> None:
        """
        Prepare for the next request on the same socket.

        Clears all parse state; the socket and ownership are kept.
        """
        self.framer.reset()

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        try:
            self.socket.close()
        except OSError:
            pass  # Already closed

        logger.debug(
            f"[{self.id}] Connection from {self.client_ip}:{self.client_port} "
            f"closed after {self.requests_handled} requests ({self.age:.1f}s)"
        )
