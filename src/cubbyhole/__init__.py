"""
=============================================================================
CUBBYHOLE - A Shared Single-Slot Message Server
=============================================================================

Any number of clients connect over TCP and share ONE message slot:

    PUT <message>   store a message (overwrites the old one)
    GET             take it out
    LOOK            peek at it
    DROP            throw it away
    HELP            list commands
    QUIT            hang up

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    cubbyhole/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m cubbyhole)
    ├── server.py            # CubbyholeServer orchestrator
    ├── config.py            # ServerConfig dataclass
    ├── exceptions.py        # Error hierarchy
    ├── mailbox.py           # The shared slot + bounded Message
    ├── protocol.py          # Command parsing, response catalog
    ├── handler.py           # Per-connection session loop
    ├── commandlog.py        # Structured per-command logging
    └── core/
        ├── socket_server.py # Listening socket, accept loop, signals
        ├── connection.py    # Client socket wrapper (line reads)
        └── workers.py       # Thread per connection

=============================================================================
QUICK START
=============================================================================

    from cubbyhole import CubbyholeServer, ServerConfig

    server = CubbyholeServer(ServerConfig(port=4242))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .exceptions import AcceptError, ConfigError, CubbyholeError, DispatchError
from .handler import ConnectionHandler
from .mailbox import MAX_MESSAGE_SIZE, Mailbox, Message
from .protocol import Command, Token, parse_command
from .server import CubbyholeServer

__all__ = [
    "CubbyholeServer",
    "ServerConfig",
    "ConnectionHandler",
    "Mailbox",
    "Message",
    "MAX_MESSAGE_SIZE",
    "Command",
    "Token",
    "parse_command",
    "CubbyholeError",
    "ConfigError",
    "AcceptError",
    "DispatchError",
    "__version__",
]
