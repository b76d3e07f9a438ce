"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from restserver import RestServer, ServerConfig


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /position HTTP/1.1\r\n"
        b"Host: localhost:27016\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request carrying a JSON command."""
    body = b'{"command": "echo", "userName": "kim", "text": "hi"}'
    return (
        b"POST /api HTTP/1.1\r\n"
        b"Host: localhost:27016\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
        + body
    )


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        workers=2,
        log_level="WARNING",
    )


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """Connected (server side, client side) socket pair."""
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    server_side.close()
    client_side.close()


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[RestServer, None, None]:
    """A server listening on an OS-assigned port, run in the background."""
    server = RestServer(config)

    @server.dispatcher.command("fail")
    def fail(user_name, args):
        raise RuntimeError("handler crashed")

    server.start()

    yield server

    server.shutdown()


class TestClient:
    """
    Raw-socket client for a running server.

    Keeps unread bytes between calls, so back-to-back pipelined
    responses are split correctly.
    """

    __test__ = False  # Not a test class

    def __init__(self, server: RestServer, timeout: float = 5.0):
        self.sock = socket.create_connection(server.address, timeout=timeout)
        self._buffer = b""

    def send(self, data: bytes) -> None:
        self.sock.sendall(data)

    def _fill(self) -> None:
        chunk = self.sock.recv(4096)
        if not chunk:
            raise ConnectionError(f"Connection closed, unread: {self._buffer!r}")
        self._buffer += chunk

    def read_response(self) -> bytes:
        """Read one response: headers, then Content-Length body bytes."""
        while b"\r\n\r\n" not in self._buffer:
            self._fill()

        head, _, rest = self._buffer.partition(b"\r\n\r\n")
        length = 0
        for line in head.split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                length = int(value.strip())

        while len(rest) < length:
            self._fill()
            head, _, rest = self._buffer.partition(b"\r\n\r\n")

        self._buffer = rest[length:]
        return head + b"\r\n\r\n" + rest[:length]

    def is_closed_by_server(self) -> bool:
        """True once the server has closed its end (recv returns b"")."""
        try:
            return self.sock.recv(1) == b""
        except ConnectionResetError:
            return True

    def close(self) -> None:
        self.sock.close()


@pytest.fixture
def client_factory(running_server: RestServer):
    """Open any number of clients to the running server; all closed after."""
    clients = []

    def make() -> TestClient:
        client = TestClient(running_server)
        clients.append(client)
        return client

    yield make

    for client in clients:
        client.close()


@pytest.fixture
def client(client_factory) -> TestClient:
    return client_factory()
