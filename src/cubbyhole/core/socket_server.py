"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket: create, bind, listen, accept, and
close it again on shutdown. It knows nothing about the cubbyhole protocol;
every accepted client is wrapped in a Connection and handed to a callback.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create a TCP socket
    2. bind()      Reserve host:port for this server
    3. listen()    Let the OS queue incoming connections (backlog)
    4. accept()    Take one queued connection, get a NEW socket for it
    5. close()     Release the listening socket on shutdown

=============================================================================
SIGNAL HANDLING FOR GRACEFUL SHUTDOWN
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (kill, docker stop) do not exit the process
directly. The handler only flips the running flag; the accept loop notices
within accept_timeout seconds, returns, and the caller tears down the
open connections in an orderly way.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from ..exceptions import AcceptError
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(callback)                                                   │
    │        ├──► _create_socket()   SO_REUSEADDR, SO_REUSEPORT, NODELAY  │
    │        ├──► bind() + listen()                                        │
    │        ├──► _setup_signals()   SIGINT/SIGTERM → shutdown()          │
    │        └──► _accept_loop()     blocks until shutdown()              │
    │                 └──► callback(Connection(...)) per client            │
    │                                                                      │
    │    shutdown()   _running = False                                     │
    │    _cleanup()   restore signal handlers, close socket                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False

        # Set once the socket is listening; cleared again on cleanup
        self._ready_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound address, or the configured one before start()."""
        if self._socket is not None:
            try:
                return self._socket.getsockname()[:2]
            except OSError:
                pass
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create the listening socket and set its options."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restart without waiting out TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except (AttributeError, OSError):
            pass  # Not available on Windows

        # Prompts are tiny writes; send them immediately
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up periodically to check the running flag
        sock.settimeout(self.config.accept_timeout)

        return sock

    def _setup_signals(self):
        """
        Route SIGINT/SIGTERM to shutdown().

        Python only allows signal handlers in the main thread. When the
        server runs in a background thread (tests, embedding) this is
        skipped and shutdown() must be called explicitly.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Start accepting connections. Blocks until shutdown() is called.

        Args:
            connection_handler: Called with every accepted Connection. It
                                must return quickly (hand off to a thread).

        Raises:
            OSError: If the socket cannot be bound or put in listen mode.
            AcceptError: If accept() fails while the server is running.
            Any exception raised by connection_handler.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to listen on {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Cubbyhole server listening on {host}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """Accept clients until shutdown() flips the running flag."""
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                logger.error(f"Accept error: {e}")
                raise AcceptError(f"accept() failed: {e}") from e

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            # Accepted sockets may inherit the listening timeout
            client_socket.setblocking(True)

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                max_line_length=self.config.max_line_length,
            )
            connection_handler(conn)

    def shutdown(self):
        """
        Stop accepting connections.

        Safe to call from a signal handler, another thread, or more than
        once.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._running = False
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._ready_event.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until the socket is listening. Returns False on timeout."""
        return self._ready_event.wait(timeout)
