"""
Unit tests for the multiplexer's readiness loop, one poll_once() at a time.
"""

import errno
import logging
import socket
import time

import pytest

from restserver.config import ServerConfig
from restserver.core import Connection, ConnectionRegistry, JobQueue, Multiplexer


@pytest.fixture
def mux():
    """A bound multiplexer that is driven by hand, never by serve_forever()."""
    config = ServerConfig(host="127.0.0.1", port=0, select_timeout=0.02)
    mux = Multiplexer(config, ConnectionRegistry(), JobQueue())
    mux.bind()

    yield mux

    mux.registry.close_all()
    mux._cleanup()


def poll_until(mux: Multiplexer, predicate, attempts: int = 100) -> bool:
    for _ in range(attempts):
        if predicate():
            return True
        mux.poll_once()
    return predicate()


def accept_client(mux: Multiplexer) -> tuple:
    """Connect a TCP client and let the multiplexer accept it."""
    known = set(c.handle for c in mux.registry.idle_connections())
    client = socket.create_connection(mux.address, timeout=5.0)

    def accepted():
        return [c for c in mux.registry.idle_connections() if c.handle not in known]

    assert poll_until(mux, lambda: bool(accepted()))
    return client, accepted()[0]


class FailingListener:
    """Stands in for the listening socket; every accept() fails."""

    def __init__(self, sock: socket.socket):
        self._sock = sock

    def fileno(self) -> int:
        return self._sock.fileno()

    def accept(self):
        raise OSError(errno.EMFILE, "Too many open files")


class TestAccept:

    def test_new_client_is_registered(self, mux):
        client, conn = accept_client(mux)
        try:
            assert conn in mux.registry
            assert not conn.is_owned
        finally:
            client.close()

    def test_accept_failure_keeps_loop_running(self, mux, caplog):
        real_listener = mux._socket
        client = socket.create_connection(mux.address, timeout=5.0)
        try:
            mux._socket = FailingListener(real_listener)
            with caplog.at_level(logging.ERROR, logger="restserver"):
                mux.poll_once()

            assert "Accept failed" in caplog.text
            assert len(mux.registry) == 0

            mux._socket = real_listener
            assert poll_until(mux, lambda: len(mux.registry) == 1)
        finally:
            mux._socket = real_listener
            client.close()


class TestReadiness:

    def test_readable_connection_is_claimed_and_enqueued(self, mux, socket_pair):
        server_side, client_side = socket_pair
        conn = Connection(socket=server_side, address=("127.0.0.1", 5000))
        mux.registry.add(conn)

        client_side.sendall(b"GET / HTTP/1.1\r\n\r\n")
        assert poll_until(mux, lambda: len(mux.job_queue) == 1)

        assert conn.is_owned
        assert mux.job_queue.get(timeout=1.0) is conn

    def test_owned_connection_is_not_watched(self, mux, socket_pair):
        server_side, client_side = socket_pair
        conn = Connection(socket=server_side, address=("127.0.0.1", 5000))
        mux.registry.add(conn)
        conn.claim()

        client_side.sendall(b"GET / HTTP/1.1\r\n\r\n")
        for _ in range(5):
            mux.poll_once()

        assert len(mux.job_queue) == 0

    def test_quiet_connection_is_left_alone(self, mux, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        mux.registry.add(conn)

        mux.poll_once()

        assert conn in mux.registry
        assert len(mux.job_queue) == 0


class TestExceptionalConditions:

    def test_stale_descriptor_is_deregistered(self, mux, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        mux.registry.add(conn)

        # Closed behind the registry's back: poll() reports POLLNVAL
        conn.socket.close()

        assert poll_until(mux, lambda: conn not in mux.registry)
        assert conn.closed

    def test_urgent_data_closes_only_that_connection(self, mux):
        """
        Deletions happen after the scan: a connection reported in the same
        iteration as an exceptional one is still enqueued.
        """
        urgent_client, urgent = accept_client(mux)
        normal_client, normal = accept_client(mux)
        try:
            urgent_client.send(b"!", socket.MSG_OOB)
            normal_client.sendall(b"GET / HTTP/1.1\r\n\r\n")
            time.sleep(0.05)

            assert poll_until(
                mux,
                lambda: urgent not in mux.registry and len(mux.job_queue) == 1,
            )

            assert urgent.closed
            assert normal in mux.registry
            assert mux.job_queue.get(timeout=1.0) is normal
        finally:
            urgent_client.close()
            normal_client.close()


class TestHighDescriptors:
    """Descriptors past FD_SETSIZE (1024) are watched like any other."""

    FD_FLOOR = 1100

    @pytest.fixture
    def high_fds(self):
        """Hold enough sockets open that every new one is numbered above 1024."""
        resource = pytest.importorskip("resource")

        soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        wanted = self.FD_FLOOR + 200
        if soft < wanted:
            limit = wanted if hard == resource.RLIM_INFINITY else min(wanted, hard)
            if limit < wanted:
                pytest.skip(f"RLIMIT_NOFILE hard limit {hard} is too low")
            resource.setrlimit(resource.RLIMIT_NOFILE, (limit, hard))

        fillers = []
        try:
            while True:
                filler = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                fillers.append(filler)
                if filler.fileno() >= self.FD_FLOOR:
                    break
            yield
        finally:
            for filler in fillers:
                filler.close()
            resource.setrlimit(resource.RLIMIT_NOFILE, (soft, hard))

    def test_high_descriptor_is_served(self, mux, high_fds):
        server_side, client_side = socket.socketpair()
        try:
            conn = Connection(socket=server_side, address=("127.0.0.1", 5000))
            assert conn.handle > 1024
            mux.registry.add(conn)

            client_side.sendall(b"GET / HTTP/1.1\r\n\r\n")
            assert poll_until(mux, lambda: len(mux.job_queue) == 1)
            assert mux.job_queue.get(timeout=1.0) is conn
        finally:
            server_side.close()
            client_side.close()

    def test_accept_continues_past_1024(self, mux, high_fds):
        client, conn = accept_client(mux)
        try:
            assert conn.handle > 1024

            client.sendall(b"GET / HTTP/1.1\r\n\r\n")
            assert poll_until(mux, lambda: len(mux.job_queue) == 1)
        finally:
            client.close()
