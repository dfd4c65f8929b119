"""
=============================================================================
CUBBYHOLE SERVER
=============================================================================

The orchestrator that wires the components together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                   CUBBYHOLE SERVER ARCHITECTURE                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                      ┌──────────────────┐                            │
    │                      │ CubbyholeServer  │                            │
    │                      └────────┬─────────┘                            │
    │            ┌──────────────────┼──────────────────┐                   │
    │            ▼                  ▼                  ▼                   │
    │    ┌──────────────┐   ┌──────────────┐   ┌──────────────┐           │
    │    │ SocketServer │   │ WorkerGroup  │   │   Mailbox    │           │
    │    │  (accept)    │   │ (1 thread    │   │ (one shared  │           │
    │    │              │   │  per client) │   │   instance)  │           │
    │    └──────┬───────┘   └──────┬───────┘   └──────▲───────┘           │
    │           │ Connection       │ runs             │ put/get/look/drop │
    │           └─────────────────►│ ConnectionHandler┘                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The Mailbox is created once and passed explicitly to every handler. No
module-level state: two servers in one process have two cubbyholes.

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    1. SIGINT/SIGTERM (or shutdown()) stops the accept loop
    2. The shared stop event is set
    3. Every open connection is aborted, waking its handler
    4. Handlers send "!QUIT: ok" (best effort) and close their sockets
    5. Workers are joined, up to shutdown_timeout seconds

=============================================================================
"""

import logging
import threading
from typing import Optional, Tuple

from .commandlog import CommandLogger
from .config import ServerConfig
from .core import Connection, SocketServer, WorkerGroup
from .handler import ConnectionHandler
from .mailbox import Mailbox


logger = logging.getLogger(__name__)


class CubbyholeServer:
    """
    Multi-client cubbyhole server.

    Usage:
        server = CubbyholeServer(ServerConfig(port=4242))
        server.run()   # blocks until Ctrl+C

    Args:
        config: Server configuration. Defaults are used if not provided.
        mailbox: The shared mailbox. A fresh, empty one if not provided.
    """

    def __init__(self, config: Optional[ServerConfig] = None, mailbox: Optional[Mailbox] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self.mailbox = mailbox if mailbox is not None else Mailbox()

        self._socket_server = SocketServer(self.config)
        self._workers = WorkerGroup(max_connections=self.config.max_connections)
        self._command_log = CommandLogger(log_format=self.config.log_format)

        # Shared by every handler; set once on shutdown
        self._stop_event = threading.Event()
        self._running = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); meaningful once the server is ready."""
        return self._socket_server.address

    @property
    def active_connections(self) -> int:
        return self._workers.active

    @property
    def stats(self) -> dict:
        return {
            "connections": self._workers.stats,
            "occupied": self.mailbox.occupied,
        }

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self, setup_logging: bool = True):
        """
        Start the server (blocking).

        Returns after shutdown() or SIGINT/SIGTERM, once open connections
        have been closed.

        Args:
            setup_logging: Configure the root logger from config.log_level.
                           Pass False when the host application does that.

        Raises:
            OSError: If the listening socket cannot be set up.
            AcceptError: If accepting connections fails.
            DispatchError: If no thread can be started for a client.
        """
        if setup_logging:
            self._setup_logging()

        self._running = True
        self._stop_event.clear()
        self._print_startup_banner()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Request shutdown. Safe from any thread; run() does the cleanup."""
        self._stop_event.set()
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until the server accepts connections. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    def _print_startup_banner(self):
        address = f"{self.config.host}:{self.config.port}"
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print("║  Cubbyhole server starting                                   ║")
        print(f"║  Listening on {address:<47}║")
        print("║  Press Ctrl+C to stop                                        ║")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("cubbyhole").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down...")
        self._running = False
        self._stop_event.set()

        self._workers.shutdown(timeout=self.config.shutdown_timeout)

        logger.info("Goodbye!")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Called by SocketServer for each client: hand it to a new thread."""
        self._workers.spawn(conn, self._process_connection)

    def _process_connection(self, conn: Connection):
        """Runs in the connection's worker thread."""
        handler = ConnectionHandler(
            self.mailbox,
            conn,
            stop_event=self._stop_event,
            command_log=self._command_log,
        )
        handler.run()
