"""
=============================================================================
REST SERVER
=============================================================================

The orchestrator: one object that owns every shared piece of state and
wires the multiplexer to the worker pool.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       REST SERVER ARCHITECTURE                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ┌───────────────┐   readable   ┌───────────┐   get()   ┌────────┐ │
    │   │  Multiplexer  │ ───claim()──►│ Job Queue │ ────────► │ Worker │ │
    │   │  (1 thread)   │    put()     └───────────┘           │  Pool  │ │
    │   └───────┬───────┘                                      └───┬────┘ │
    │           │ accept / erase        ┌──────────────┐          │      │
    │           └──────────────────────►│   Registry   │◄─────────┘      │
    │                                   │ fd → Conn    │  erase on error  │
    │                                   └──────────────┘                  │
    │                                                                      │
    │   Worker, per job:                                                   │
    │     recv(bytes_wanted) → framer.feed()                               │
    │       → COMPLETE? dispatch → send response → reset (repeat for any  │
    │                   pipelined bytes already received)                  │
    │     → release()  (connection back under poll())                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

All of it lives on a RestServer instance, created in __init__ and torn
down in run()'s finally block, after every worker thread has been joined.

=============================================================================
FAILURE HANDLING IN THE WORKER
=============================================================================

    TransportError   recv/send failed       → close + erase, no response
    ProtocolError    bytes are not HTTP     → close + erase, no response
    zero-byte read   peer closed            → close + erase
    ApplicationError dispatcher refused     → JSON error response, keep going
    anything else    handler bug            → 500 response, logged
    anything else    outside the handler    → close + erase, logged

A failed connection is never released: it is gone, and must not re-enter
the poll() set.

=============================================================================
"""

import logging
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core import ConnectionRegistry, Connection, JobQueue, Multiplexer, WorkerPool
from .dispatch import CommandDispatcher, create_dispatcher
from .errors import ApplicationError, ProtocolError, TransportError
from .http import HTTPResponse, HTTPStatus, error_response, json_response


logger = logging.getLogger(__name__)


class RestServer:
    """
    Multiplexed HTTP/JSON command server.

    =========================================================================
    USAGE
    =========================================================================

        server = RestServer(ServerConfig(port=27016, workers=3))

        @server.dispatcher.command("greet")
        def greet(user_name, args):
            return {"message": f"hello {user_name}"}

        server.run()        # Blocks until Ctrl+C / SIGTERM

    In tests:

        server.start()      # Runs in a background thread
        host, port = server.address
        ...
        server.shutdown()

    A RestServer runs once; create a new instance to serve again.
    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        dispatcher: Optional[CommandDispatcher] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self.dispatcher = dispatcher or create_dispatcher()

        self.registry = ConnectionRegistry()
        self.job_queue = JobQueue(maxsize=self.config.queue_size)
        self.pool = WorkerPool(
            self.job_queue,
            self._process_connection,
            size=self.config.workers,
        )
        self.multiplexer = Multiplexer(self.config, self.registry, self.job_queue)

        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        return self.multiplexer.address

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self) -> None:
        """Start the server (blocking)."""
        self._setup_logging()

        self.pool.start()
        logger.info(
            f"Starting REST server on {self.config.host}:{self.config.port} "
            f"with {self.config.workers} workers"
        )

        try:
            self.multiplexer.serve_forever()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._teardown()

    def start(self) -> None:
        """
        Bind, then run the server in a background thread.

        Raises:
            OSError: If the address cannot be bound.
            RuntimeError: If the server is already started.
        """
        if self._thread is not None:
            raise RuntimeError("Server already started")

        self.multiplexer.bind()

        self._thread = threading.Thread(target=self.run, name="Multiplexer", daemon=True)
        self._thread.start()

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the server and, if it runs in the background, wait for it."""
        self.multiplexer.shutdown()

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def _teardown(self) -> None:
        logger.info("Shutting down server...")
        self.multiplexer.shutdown()
        self.pool.shutdown()
        self.registry.close_all()
        logger.info("Server stopped")

    def _setup_logging(self) -> None:
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("restserver").setLevel(level)

    # =========================================================================
    # WORKER BODY
    # =========================================================================

    def _process_connection(self, conn: Connection) -> None:
        """
        Handle one readiness event for a connection (runs on a worker).

        The connection is owned by this worker for the whole call.
        """
        try:
            alive = self._serve(conn)
        except ProtocolError as e:
            logger.warning(f"[{conn.id}] Protocol error, closing: {e}")
            alive = False
        except TransportError as e:
            logger.warning(f"[{conn.id}] Transport error, closing: {e}")
            alive = False
        except Exception as e:
            # Parse state is unknown; the connection cannot be reused
            logger.exception(f"[{conn.id}] Unexpected error, closing: {e}")
            alive = False

        if alive:
            conn.release()
        else:
            self.registry.remove(conn)

    def _serve(self, conn: Connection) -> bool:
        """
        Read once, frame, and answer every request that became complete.

        Returns:
            True to hand the connection back to the multiplexer,
            False if the peer closed it.
        """
        framer = conn.framer

        data = conn.receive(framer.bytes_wanted)
        if not data:
            framer.eof()
            logger.debug(f"[{conn.id}] Peer closed connection")
            return False

        while data:
            consumed = framer.feed(data)
            data = data[consumed:]

            if not framer.is_complete:
                logger.debug(
                    f"[{conn.id}] Partial request, {framer.state.value} "
                    f"({framer.parse_offset} bytes in segment)"
                )
                break

            response = self._handle_request(conn)
            conn.send_all(response.to_bytes())
            conn.requests_handled += 1
            conn.reset()

        return True

    def _handle_request(self, conn: Connection) -> HTTPResponse:
        """Run the dispatcher on the framed request and build the response."""
        request = conn.framer.to_request()

        try:
            status, payload = self.dispatcher.dispatch(request)
            response = json_response(payload, status)
        except ApplicationError as e:
            status = HTTPStatus.from_code(e.status_code)
            logger.info(f"[{conn.id}] {request.request_line} rejected ({int(status)}): {e}")
            return error_response(status, str(e))
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error")

        logger.debug(f"[{conn.id}] {request.request_line} -> {int(status)} ({len(response.body)} bytes)")
        return response
