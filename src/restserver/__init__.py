"""
=============================================================================
RESTSERVER - Multiplexed HTTP/JSON Command Server
=============================================================================

A single-process TCP server that accepts many concurrent HTTP connections,
reassembles each connection's byte stream into complete requests no matter
how the bytes were fragmented, and answers them from a fixed worker pool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. MULTIPLEXING                                                    │
    │      - One poll() loop watches every idle socket                    │
    │      - No thread per connection                                     │
    │                                                                      │
    │   2. INCREMENTAL FRAMING                                             │
    │      - Header lines until the blank line                            │
    │      - Then exactly Content-Length body bytes                       │
    │      - Resumes at any byte boundary                                 │
    │                                                                      │
    │   3. PRODUCER / CONSUMER HAND-OFF                                    │
    │      - Ownership flag: multiplexer OR one worker, never both        │
    │      - Bounded FIFO job queue into a fixed worker pool              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    restserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m restserver)
    ├── server.py            # RestServer: server context + worker body
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # Transport / Protocol / Application errors
    ├── dispatch.py          # JSON command dispatcher
    ├── core/
    │   ├── connection.py    # Socket + ownership flag + framer
    │   ├── registry.py      # fd → Connection
    │   ├── job_queue.py     # Bounded FIFO
    │   ├── worker_pool.py   # Worker threads
    │   └── multiplexer.py   # poll() loop
    └── http/
        ├── framer.py        # Incremental request framer
        ├── response.py      # Response wire format
        └── status_codes.py  # HTTP status enum

=============================================================================
QUICK START
=============================================================================

    from restserver import RestServer, ServerConfig

    server = RestServer(ServerConfig(port=27016))

    @server.dispatcher.command("greet")
    def greet(user_name, args):
        return {"message": f"hello {user_name}"}

    server.run()

    $ curl http://127.0.0.1:27016/
    {"tag": "position", "x": 10, "y": 10}

=============================================================================
"""

__version__ = "1.0.0"

from .server import RestServer
from .config import ServerConfig

__all__ = ["RestServer", "ServerConfig", "__version__"]
