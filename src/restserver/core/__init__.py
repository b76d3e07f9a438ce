"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The concurrency machinery of the server:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          MULTIPLEXER                                 │
    │  • Owns the listening socket, accepts new connections               │
    │  • Runs poll() over every connection no worker currently owns       │
    │  • Claims readable connections and puts them on the job queue       │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ put(conn)
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                     JOB QUEUE  →  WORKER POOL                        │
    │  • Bounded FIFO, blocking get()                                     │
    │  • Fixed number of worker threads run the connection handler        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ read / frame / respond / release
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                  CONNECTION  +  REGISTRY                             │
    │  • Connection: socket, ownership flag, per-connection framer        │
    │  • Registry: fd → Connection, shared under one lock                 │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection
from .registry import ConnectionRegistry
from .job_queue import JobQueue
from .worker_pool import WorkerPool, WorkerState
from .multiplexer import Multiplexer

__all__ = [
    "Connection",          # Client socket + ownership flag + framer
    "ConnectionRegistry",  # fd → Connection map
    "JobQueue",            # Connections waiting for a worker
    "WorkerPool",          # Fixed set of worker threads
    "WorkerState",         # Worker lifecycle states
    "Multiplexer",         # poll() loop + accept
]
