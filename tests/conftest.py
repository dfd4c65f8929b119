"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Generator, List, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cubbyhole import CubbyholeServer, Mailbox, ServerConfig
from cubbyhole.core.connection import Connection


PROMPT = b"\n> "


@pytest.fixture
def mailbox() -> Mailbox:
    """A fresh, empty mailbox."""
    return Mailbox()


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def config(free_port: int) -> ServerConfig:
    """Test server configuration on a free localhost port."""
    return ServerConfig(
        host="127.0.0.1",
        port=free_port,
        accept_timeout=0.1,
        shutdown_timeout=2.0,
        log_level="WARNING",
    )


@pytest.fixture
def socket_pair() -> Generator[Tuple[Connection, socket.socket], None, None]:
    """
    A server-side Connection and the client socket at the other end.

    Uses socketpair() so handler tests need no listening socket.
    """
    server_sock, client_sock = socket.socketpair()
    client_sock.settimeout(5.0)
    conn = Connection(socket=server_sock, address=("127.0.0.1", 50000))

    yield conn, client_sock

    conn.close()
    client_sock.close()


class CubbyClient:
    """Line-oriented test client that reads responses up to the prompt."""

    def __init__(self, port: int, timeout: float = 5.0):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        self._buffer = b""

    def read_response(self) -> bytes:
        """Read one full response, prompt included."""
        while PROMPT not in self._buffer:
            chunk = self.sock.recv(4096)
            if not chunk:
                raise ConnectionError(f"Connection closed, got {self._buffer!r}")
            self._buffer += chunk
        end = self._buffer.index(PROMPT) + len(PROMPT)
        response, self._buffer = self._buffer[:end], self._buffer[end:]
        return response

    def command(self, line: str) -> bytes:
        self.sock.sendall(line.encode() + b"\r\n")
        return self.read_response()

    def is_closed(self) -> bool:
        """True once the server has closed its side (recv returns b"")."""
        try:
            return self.sock.recv(4096) == b""
        except (ConnectionResetError, socket.timeout):
            return False

    def close(self):
        self.sock.close()


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: CubbyholeServer):
        self.server = server
        self._thread: threading.Thread = None
        self.clients: List[CubbyClient] = []
        self.error: BaseException = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def _run(self):
        try:
            self.server.run(setup_logging=False)
        except BaseException as e:
            self.error = e

    def connect(self) -> CubbyClient:
        client = CubbyClient(self.port)
        self.clients.append(client)
        return client

    def stop(self):
        """Stop the server."""
        for client in self.clients:
            client.close()

        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def test_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """A running cubbyhole server."""
    test_srv = TestServer(CubbyholeServer(config))
    test_srv.start()

    yield test_srv

    test_srv.stop()
