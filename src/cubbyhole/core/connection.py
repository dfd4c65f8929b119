"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps a raw client socket with the small API the cubbyhole
handler needs: read one line, send bytes, close.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that types

    PUT hello\\r\\n
    GET\\r\\n

might be seen by the server as any of:

    recv() → b"PUT hello\\r\\nGET\\r\\n"     (both combined)
    recv() → b"PUT hel"                      (partial)
    recv() → b"lo\\r\\nGET\\r\\n"            (rest of first + second)

So we keep a buffer and cut it at newlines. Anything after the first
newline stays in the buffer for the next read_line() call.

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   NEW ──► READING ──► PROCESSING ──► WRITING ──┐                    │
    │              ▲                                  │                    │
    │              └──────────────────────────────────┘                    │
    │                                                                      │
    │   (QUIT or broken stream)  ──► CLOSING ──► CLOSED                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A cubbyhole connection has no keep-alive timeout by default: it stays
open until the client quits or disappears.

=============================================================================
"""

import socket
import time
import logging
import threading
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Tuple


logger = logging.getLogger(__name__)

# Upper bounds for reading leftover client data in close()
DRAIN_TIMEOUT = 0.5
DRAIN_LIMIT = 64 * 1024


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Usage:
        with Connection(socket=client_socket, address=addr) as conn:
            line = conn.read_line()
            conn.send(b"!PUT: ok\\n> ")
    """
    socket: socket.socket
    address: Tuple[str, int]
    buffer_size: int = 1024
    timeout: Optional[float] = None
    max_line_length: int = 4096

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    last_activity: float = field(default_factory=time.time)
    commands_handled: int = 0
    last_line_length: int = 0
    _buffer: bytes = field(default=b"", repr=False)
    _discarding: bool = field(default=False, repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        """Apply the read timeout to the socket (None = blocking)."""
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def peer(self) -> str:
        """Client address as "ip:port" for log lines."""
        return f"{self.client_ip}:{self.client_port}"

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_line(self) -> bytes:
        """
        Read the next line from the client.

        Blocks until a full line (ending in b"\\n") is buffered, the peer
        closes the stream, or the buffer reaches max_line_length.

        A line longer than max_line_length is cut: its first
        max_line_length bytes are returned as one line and the rest of it,
        up to and including the next b"\\n", is thrown away.

        Returns:
            The line including its line ending. If the peer closed the
            stream mid-line, the partial line. b"" when the stream is
            finished (EOF, reset, or read timeout) and nothing is buffered.
        """
        self.state = ConnectionState.READING

        while True:
            if self._discarding:
                self._skip_rest_of_line()

            if not self._discarding:
                newline = self._buffer.find(b"\n")
                if newline != -1 and newline < self.max_line_length:
                    return self._take(newline + 1)

                if len(self._buffer) >= self.max_line_length:
                    logger.debug(f"[{self.id}] Line over {self.max_line_length} bytes, cut")
                    line = self._take(self.max_line_length)
                    self._discarding = True
                    self._skip_rest_of_line()
                    return line

            chunk = self._recv()
            if not chunk:
                line, self._buffer = self._buffer, b""
                self.last_line_length = len(line)
                return line

            self._buffer += chunk

    def _take(self, end: int) -> bytes:
        line, self._buffer = self._buffer[:end], self._buffer[end:]
        self.last_line_length = len(line)
        self.commands_handled += 1
        self.last_activity = time.time()
        return line

    def _skip_rest_of_line(self):
        """Drop buffered bytes up to and including the next newline."""
        newline = self._buffer.find(b"\n")
        if newline == -1:
            self._buffer = b""
        else:
            self._buffer = self._buffer[newline + 1:]
            self._discarding = False

    def _recv(self) -> bytes:
        """
        Receive data from the socket.

        Returns:
            Received bytes, or b"" if the stream is finished for any reason.
        """
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except socket.timeout:
            logger.debug(f"[{self.id}] Read timeout")
            return b""
        except OSError as e:
            # ConnectionResetError, or a socket shut down by abort()
            logger.debug(f"[{self.id}] Read failed: {e}")
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send data to the client.

        Uses sendall() so a partial send never truncates a response.

        Returns:
            True if sent, False if the connection is gone.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): tell the client we're done sending (FIN)
        2. Drain briefly (bounded by DRAIN_TIMEOUT and DRAIN_LIMIT)
        3. close(): release the file descriptor

        Safe to call more than once and from more than one thread.
        """
        with self._close_lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        # A peer that keeps sending must not hold the worker here
        deadline = time.time() + DRAIN_TIMEOUT
        drained = 0
        try:
            while drained < DRAIN_LIMIT:
                remaining = deadline - time.time()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(1024)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.commands_handled} commands")

    def abort(self):
        """
        Interrupt a blocked read from another thread.

        Used on server shutdown. shutdown(SHUT_RDWR) makes a pending recv()
        return b"", so the handler thread sees an implicit QUIT and closes
        the connection itself. The descriptor is not closed here.
        """
        if self.state == ConnectionState.CLOSED:
            return
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False
