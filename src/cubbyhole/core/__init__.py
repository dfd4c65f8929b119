"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the cubbyhole protocol:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SOCKET SERVER   listening socket, accept loop, signal handling     │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ one Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  WORKERS         one daemon thread per connection, shutdown registry│
    └─────────────────────────────────────────────────────────────────────┘
                                    │ runs the handler
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │  CONNECTION      buffered line reads, sendall, graceful close       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer
from .workers import ConnectionWorker, WorkerGroup, WorkerState

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ConnectionWorker",
    "WorkerGroup",
    "WorkerState",
]
