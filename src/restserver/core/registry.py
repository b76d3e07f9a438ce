"""
Connection registry: socket handle → Connection.

Shared by the multiplexer thread (insert on accept, erase on exceptional
condition, snapshot for poll()) and the worker threads (erase on
failure). Every mutation and every snapshot happens under one lock, so the
multiplexer never iterates the dict while a worker is erasing from it.
"""

import logging
import threading
from typing import Dict, List, Optional

from .connection import Connection


logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Thread-safe map of active connections, keyed by socket handle."""

    def __init__(self):
        self._connections: Dict[int, Connection] = {}
        self._lock = threading.Lock()

    def add(self, conn: Connection) -> None:
        with self._lock:
            self._connections[conn.handle] = conn

    def remove(self, conn: Connection) -> bool:
        """
        Erase the connection and close its socket.

        The entry is erased before the socket is closed, so the fd cannot
        be handed to a newly accepted socket while it is still a key here.

        Returns:
            True if the connection was registered, False if another thread
            already removed it.
        """
        with self._lock:
            removed = self._connections.get(conn.handle) is conn
            if removed:
                del self._connections[conn.handle]
        conn.close()
        return removed

    def get(self, handle: int) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(handle)

    def idle_connections(self) -> List[Connection]:
        """Snapshot of the connections not currently owned by a worker."""
        with self._lock:
            return [c for c in self._connections.values() if not c.is_owned]

    def close_all(self) -> None:
        """Close and forget every connection (server teardown)."""
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()

        for conn in connections:
            conn.close()

        if connections:
            logger.info(f"Closed {len(connections)} open connections")

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, conn: Connection) -> bool:
        with self._lock:
            return self._connections.get(conn.handle) is conn
