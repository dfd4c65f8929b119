"""
Unit tests for the Connection wrapper.
"""

import socket
import threading
import time

import pytest

from cubbyhole.core.connection import Connection, ConnectionState


@pytest.fixture
def pair():
    server_sock, client_sock = socket.socketpair()
    client_sock.settimeout(5.0)
    yield server_sock, client_sock
    server_sock.close()
    client_sock.close()


def make_conn(sock: socket.socket, **kwargs) -> Connection:
    return Connection(socket=sock, address=("10.0.0.7", 4321), **kwargs)


class TestReadLine:
    """Tests for buffered line reading."""

    def test_single_line(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock)
        client.sendall(b"GET\r\n")

        assert conn.read_line() == b"GET\r\n"
        assert conn.last_line_length == 5
        assert conn.commands_handled == 1

    def test_multiple_lines_in_one_segment(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock)
        client.sendall(b"PUT a\nGET\n")

        assert conn.read_line() == b"PUT a\n"
        assert conn.read_line() == b"GET\n"

    def test_line_split_across_segments(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock)

        def send_in_pieces():
            client.sendall(b"PUT hel")
            client.sendall(b"lo\r\n")

        threading.Thread(target=send_in_pieces).start()
        assert conn.read_line() == b"PUT hello\r\n"

    def test_eof_returns_empty(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock)
        client.shutdown(socket.SHUT_WR)

        assert conn.read_line() == b""
        assert conn.last_line_length == 0

    def test_eof_returns_partial_line_first(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock)
        client.sendall(b"LOOK")
        client.shutdown(socket.SHUT_WR)

        assert conn.read_line() == b"LOOK"
        assert conn.read_line() == b""

    def test_overlong_line_is_cut(self, pair):
        """Test that the rest of an overlong line is dropped, not returned."""
        server_sock, client = pair
        conn = make_conn(server_sock, buffer_size=256, max_line_length=300)
        client.sendall(b"x" * 700 + b"\nGET\n")

        assert conn.read_line() == b"x" * 300
        assert conn.read_line() == b"GET\n"

    def test_overlong_tail_never_becomes_a_line(self, pair):
        """Test that a trailing QUIT inside an overlong PUT is thrown away."""
        server_sock, client = pair
        conn = make_conn(server_sock)
        line = b"PUT " + b"x" * 4092 + b"QUIT\n"
        client.sendall(line + b"LOOK\n")

        assert conn.read_line() == line[:4096]
        assert conn.read_line() == b"LOOK\n"
        assert conn.commands_handled == 2

    def test_overlong_tail_across_segments(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock, buffer_size=256, max_line_length=256)

        def send_in_pieces():
            client.sendall(b"y" * 256)
            time.sleep(0.05)
            client.sendall(b"z" * 500)
            time.sleep(0.05)
            client.sendall(b"zz\r\nDROP\r\n")

        sender = threading.Thread(target=send_in_pieces)
        sender.start()

        assert conn.read_line() == b"y" * 256
        assert conn.read_line() == b"DROP\r\n"
        sender.join(timeout=5.0)

    def test_eof_while_dropping_overlong_tail(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock, max_line_length=256)
        client.sendall(b"q" * 400)
        client.shutdown(socket.SHUT_WR)

        assert conn.read_line() == b"q" * 256
        assert conn.read_line() == b""

    def test_timeout_returns_empty(self, pair):
        server_sock, _ = pair
        conn = make_conn(server_sock, timeout=0.05)

        assert conn.read_line() == b""


class TestSendAndClose:
    """Tests for sending and closing."""

    def test_send(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock)

        assert conn.send(b"!PUT: ok\n> ") is True
        assert client.recv(1024) == b"!PUT: ok\n> "

    def test_send_after_peer_closed(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock)
        client.close()

        assert conn.send(b"x" * 100000) is False

    def test_close_is_idempotent(self, pair):
        server_sock, client = pair
        conn = make_conn(server_sock)
        client.close()

        conn.close()
        conn.close()
        assert conn.state is ConnectionState.CLOSED
        assert conn.is_closed

    def test_context_manager_closes(self, pair):
        server_sock, client = pair
        with make_conn(server_sock) as conn:
            conn.send(b"bye")
        assert conn.is_closed
        assert client.recv(1024) == b"bye"

    def test_abort_wakes_blocked_reader(self, pair):
        server_sock, _ = pair
        conn = make_conn(server_sock)
        result = []

        reader = threading.Thread(target=lambda: result.append(conn.read_line()))
        reader.start()
        conn.abort()
        reader.join(timeout=5.0)

        assert not reader.is_alive()
        assert result == [b""]

    def test_peer_address(self, pair):
        server_sock, _ = pair
        conn = make_conn(server_sock)
        assert conn.client_ip == "10.0.0.7"
        assert conn.client_port == 4321
        assert conn.peer == "10.0.0.7:4321"

    def test_close_does_not_wait_on_a_flooding_peer(self, pair):
        """Test that close() returns while the client keeps sending."""
        server_sock, client = pair
        conn = make_conn(server_sock)
        stop = threading.Event()

        def flood():
            while not stop.is_set():
                try:
                    client.sendall(b"x" * 4096)
                except OSError:
                    return

        flooder = threading.Thread(target=flood, daemon=True)
        flooder.start()
        try:
            started = time.time()
            conn.close()
            assert time.time() - started < 2.0
            assert conn.is_closed
        finally:
            stop.set()
            flooder.join(timeout=5.0)
