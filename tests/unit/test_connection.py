"""
Unit tests for Connection and ConnectionRegistry.
"""

import threading
import time

import pytest

from restserver.core import Connection, ConnectionRegistry
from restserver.errors import TransportError
from restserver.http.framer import FramerState


class TestOwnership:
    """Tests for the claim/release hand-off."""

    def test_new_connection_is_unowned(self, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        assert not conn.is_owned

    def test_claim_is_exclusive(self, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))

        assert conn.claim() is True
        assert conn.is_owned
        assert conn.claim() is False

        conn.release()
        assert not conn.is_owned
        assert conn.claim() is True

    def test_concurrent_claims_have_one_winner(self, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        wins = []
        barrier = threading.Barrier(8)

        def try_claim():
            barrier.wait()
            wins.append(conn.claim())

        threads = [threading.Thread(target=try_claim) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert wins.count(True) == 1


class TestIO:
    """Tests for receive() and send_all()."""

    def test_receive(self, socket_pair):
        server_side, client_side = socket_pair
        conn = Connection(socket=server_side, address=("127.0.0.1", 5000))

        client_side.sendall(b"GET / HTTP/1.1\r\n")
        assert conn.receive(1024) == b"GET / HTTP/1.1\r\n"

    def test_receive_is_bounded(self, socket_pair):
        server_side, client_side = socket_pair
        conn = Connection(socket=server_side, address=("127.0.0.1", 5000))

        client_side.sendall(b"abcdef")
        assert conn.receive(3) == b"abc"
        assert conn.receive(3) == b"def"

    def test_receive_after_peer_close(self, socket_pair):
        server_side, client_side = socket_pair
        conn = Connection(socket=server_side, address=("127.0.0.1", 5000))

        client_side.close()
        assert conn.receive(1024) == b""

    def test_send_all_large_buffer(self, socket_pair):
        """A buffer larger than the socket buffer still arrives whole."""
        server_side, client_side = socket_pair
        conn = Connection(socket=server_side, address=("127.0.0.1", 5000))
        payload = bytes(range(256)) * 4096  # 1 MB

        received = bytearray()

        def drain():
            while len(received) < len(payload):
                chunk = client_side.recv(65536)
                if not chunk:
                    break
                received.extend(chunk)

        reader = threading.Thread(target=drain)
        reader.start()
        conn.send_all(payload)
        reader.join(timeout=10.0)

        assert bytes(received) == payload

    def test_send_on_closed_socket_raises_transport_error(self, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        conn.close()

        with pytest.raises(TransportError):
            conn.send_all(b"data")

    def test_reset_clears_framer(self, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        conn.framer.feed(b"GET / HTTP/1.1\r\n\r\n")
        assert conn.framer.is_complete

        conn.reset()
        assert conn.framer.state == FramerState.AWAITING_REQUEST_LINE
        assert conn.framer.is_idle


class TestClose:

    def test_close_is_idempotent(self, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))

        conn.close()
        conn.close()

        assert conn.closed

    def test_age_counts_from_accept(self, socket_pair):
        conn = Connection(
            socket=socket_pair[0],
            address=("127.0.0.1", 5000),
            created_at=time.time() - 2.0,
        )
        assert conn.age >= 2.0

    def test_handle_survives_close(self, socket_pair):
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        handle = conn.handle

        conn.close()
        assert conn.handle == handle
        assert conn.fileno() == handle


class TestRegistry:

    def test_add_and_get(self, socket_pair):
        registry = ConnectionRegistry()
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))

        registry.add(conn)

        assert len(registry) == 1
        assert conn in registry
        assert registry.get(conn.handle) is conn

    def test_remove_erases_and_closes(self, socket_pair):
        registry = ConnectionRegistry()
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        registry.add(conn)

        assert registry.remove(conn) is True

        assert conn not in registry
        assert registry.get(conn.handle) is None
        assert conn.closed

    def test_second_remove_reports_false(self, socket_pair):
        registry = ConnectionRegistry()
        conn = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        registry.add(conn)

        registry.remove(conn)
        assert registry.remove(conn) is False

    def test_idle_connections_skips_owned(self, socket_pair):
        registry = ConnectionRegistry()
        idle = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        busy = Connection(socket=socket_pair[1], address=("127.0.0.1", 5001))
        registry.add(idle)
        registry.add(busy)

        busy.claim()

        assert registry.idle_connections() == [idle]

    def test_close_all(self, socket_pair):
        registry = ConnectionRegistry()
        first = Connection(socket=socket_pair[0], address=("127.0.0.1", 5000))
        second = Connection(socket=socket_pair[1], address=("127.0.0.1", 5001))
        registry.add(first)
        registry.add(second)

        registry.close_all()

        assert len(registry) == 0
        assert first.closed and second.closed
