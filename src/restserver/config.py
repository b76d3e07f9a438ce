"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the REST server.

The only settings the server strictly needs are where to listen and how
many workers to run. Everything else has a default suited to a local deployment
(127.0.0.1:27016, three worker threads, 8 KB buffers).

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m restserver --port 3000                          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── REST_PORT=3000 python -m restserver                       │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass


@dataclass
class ServerConfig:
    """
    Configuration for the REST server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, send_timeout

    FRAMING LIMITS
    - buffer_size, max_body_size

    CONCURRENCY
    - workers, queue_size, select_timeout

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """The IP address to bind the listening socket to."""

    port: int = 27016
    """
    The port number to listen on.
    0 lets the OS pick a free port (the bound port is reported by
    RestServer.address once the server is listening).
    """

    backlog: int = 10
    """Maximum number of connections queued by the kernel before accept()."""

    send_timeout: float = 30.0
    """
    Timeout in seconds for a single send() on a client socket.
    A peer that stops reading its response is treated as a transport error.
    """

    # ─────────────────────────────────────────────────────────────────────
    # FRAMING LIMITS
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 8192
    """
    Upper bound for one recv() and for a single header line.
    A header line that does not fit is a protocol error.
    """

    max_body_size: int = 8192
    """
    Largest Content-Length accepted.
    Bodies must fit in one bounded per-connection buffer.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    workers: int = 3
    """Number of worker threads. Fixed for the lifetime of the server."""

    queue_size: int = 1024
    """Capacity of the job queue of connections waiting for a worker."""

    select_timeout: float = 0.05
    """
    Upper bound in seconds for one readiness wait.
    Connections released by a worker only become visible to poll() on
    the next iteration, so this is also the worst-case re-multiplexing
    delay. Keep it short.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        REST_HOST       Server host (default: 127.0.0.1)
        REST_PORT       Server port (default: 27016)
        REST_WORKERS    Worker threads (default: 3)
        REST_LOG_LEVEL  Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("REST_HOST", "127.0.0.1"),
            port=int(os.getenv("REST_PORT", "27016")),
            workers=int(os.getenv("REST_WORKERS", "3")),
            log_level=os.getenv("REST_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so a bad value fails immediately instead of
        on the first request.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.workers < 1:
            raise ValueError("workers must be >= 1")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 64:
            raise ValueError("buffer_size must be >= 64")

        if self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.select_timeout <= 0:
            raise ValueError("select_timeout must be > 0")

        if self.send_timeout <= 0:
            raise ValueError("send_timeout must be > 0")
