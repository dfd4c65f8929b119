"""
=============================================================================
COMMAND LOGGING
=============================================================================

One structured log record per dispatched command, written to the
"cubbyhole.commands" logger. Route or silence it independently of the
server's own log output:

    logging.getLogger("cubbyhole.commands").setLevel(logging.WARNING)

Message contents are never written here, only their length. The mailbox
logger ("cubbyhole.mailbox") shows contents at DEBUG level for anyone who
really wants to see them.

=============================================================================
"""

import json
import logging
import time
from dataclasses import dataclass


logger = logging.getLogger("cubbyhole.commands")


@dataclass
class CommandLog:
    """
    Structured log entry for one command.

    connection_id:   Short id of the connection (matches other log lines)
    client:          Client address as "ip:port"
    command:         Token name (GET, PUT, ..., UNSUPPORTED)
    implicit:        True for a QUIT synthesized from a broken stream
    payload_length:  Bytes of PUT payload received (0 for other commands)
    occupied:        Whether the mailbox holds a message afterwards
    duration_ms:     Time spent dispatching the command
    timestamp:       When the command was handled
    """

    connection_id: str
    client: str
    command: str
    implicit: bool
    payload_length: int
    occupied: bool
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "client": self.client,
            "command": self.command,
            "implicit": self.implicit,
            "payload_length": self.payload_length,
            "occupied": self.occupied,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """One line, easy to grep: client, command, result, timing."""
        command = f"{self.command}(implicit)" if self.implicit else self.command
        return (
            f"{self.client} [{self.timestamp}] [{self.connection_id}] "
            f"{command} {self.payload_length} "
            f"{'occupied' if self.occupied else 'empty'} {self.duration_ms:.2f}ms"
        )


class CommandLogger:
    """
    Emits CommandLog records as text or JSON.

        command_log = CommandLogger(log_format="json")
        command_log.log(entry)
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def log(self, entry: CommandLog):
        if not logger.isEnabledFor(self.log_level):
            return
        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

    @staticmethod
    def timestamp() -> str:
        return time.strftime("%d/%b/%Y:%H:%M:%S %z")
