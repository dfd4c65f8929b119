"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the cubbyhole server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m cubbyhole 4242 --host 127.0.0.1                 │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── CUBBYHOLE_PORT=4242 python -m cubbyhole                   │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The only setting a cubbyhole really needs is the port. Everything else has
a sensible default and exists so tests and deployments can tune timeouts,
connection limits and logging without touching code.

=============================================================================
"""

import os
import socket
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigError


LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the cubbyhole server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, accept_timeout

    CONNECTION SETTINGS
    - timeout, max_line_length, max_connections, shutdown_timeout

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to.
    - "0.0.0.0" - All network interfaces (default, like INADDR_ANY)
    - "127.0.0.1" - Localhost only
    """

    port: int = 4242
    """The port number to listen on (1-65535)."""

    backlog: int = socket.SOMAXCONN
    """Maximum number of queued connections waiting for accept()."""

    buffer_size: int = 1024
    """Bytes requested per recv() call on a client socket."""

    accept_timeout: float = 1.0
    """
    Seconds accept() blocks before re-checking the running flag.
    Lower values make shutdown snappier at the cost of more wakeups.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    timeout: Optional[float] = None
    """
    Idle read timeout per connection in seconds.
    None = wait forever for the next command (classic cubbyhole behavior).
    A timed-out read is handled like a closed connection (implicit QUIT).
    """

    max_line_length: int = 4096
    """
    Longest command line buffered before it is processed anyway.
    Protects the server from clients that never send a newline.
    """

    max_connections: Optional[int] = None
    """
    Maximum number of simultaneously open client connections.
    None = unlimited. Connections over the limit are closed right away.
    """

    shutdown_timeout: float = 5.0
    """Seconds to wait for connection threads to finish on shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Per-command log format: 'text' or 'json'."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        CUBBYHOLE_HOST             Server host (default: 0.0.0.0)
        CUBBYHOLE_PORT             Server port (default: 4242)
        CUBBYHOLE_TIMEOUT          Idle read timeout in seconds (default: none)
        CUBBYHOLE_MAX_CONNECTIONS  Connection limit (default: unlimited)
        CUBBYHOLE_LOG_LEVEL        Logging level (default: INFO)
        CUBBYHOLE_LOG_FORMAT       text or json (default: text)

        =====================================================================

        Raises:
            ConfigError: If a numeric variable cannot be parsed.
        """
        try:
            timeout = os.getenv("CUBBYHOLE_TIMEOUT")
            max_connections = os.getenv("CUBBYHOLE_MAX_CONNECTIONS")
            return cls(
                host=os.getenv("CUBBYHOLE_HOST", "0.0.0.0"),
                port=int(os.getenv("CUBBYHOLE_PORT", "4242")),
                timeout=float(timeout) if timeout else None,
                max_connections=int(max_connections) if max_connections else None,
                log_level=os.getenv("CUBBYHOLE_LOG_LEVEL", "INFO"),
                log_format=os.getenv("CUBBYHOLE_LOG_FORMAT", "text"),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid environment configuration: {e}") from e

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so a bad port or timeout fails before the
        socket is ever created.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if not 0 < self.port < 65536:
            raise ConfigError(
                "Port number is either too small or too big. Please choose a "
                "number between 1 and 65535, for security reason consider a "
                "port above 1023."
            )

        if self.buffer_size < 256:
            raise ConfigError("buffer_size must be >= 256")

        if self.max_line_length < 256:
            raise ConfigError("max_line_length must be >= 256")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError("timeout must be > 0")

        if self.accept_timeout <= 0:
            raise ConfigError("accept_timeout must be > 0")

        if self.max_connections is not None and self.max_connections < 1:
            raise ConfigError("max_connections must be >= 1")

        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
