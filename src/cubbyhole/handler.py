"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Drives one client session from the welcome banner to the final QUIT.

=============================================================================
SESSION STATE MACHINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   GREETING ──send !HELLO──► AWAIT_COMMAND ◄──────────┐              │
    │                                 │                     │              │
    │                     read_line() │                     │ response     │
    │                                 ▼                     │ sent         │
    │                             DISPATCH ─────────────────┘              │
    │                                 │                                    │
    │              QUIT, empty read,  │                                    │
    │              or server stopping ▼                                    │
    │                            TERMINATED  (send !QUIT: ok, close)       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The handler blocks only on its own connection's read. The shared Mailbox
is touched through its locked methods, and every send happens after the
mailbox call has returned, so a slow client never holds the lock.

=============================================================================
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

from .commandlog import CommandLog, CommandLogger
from .core.connection import Connection, ConnectionState
from .mailbox import Mailbox
from .protocol import (
    Command,
    Token,
    WELCOME,
    NO_MESSAGE,
    format_response,
    parse_command,
)


logger = logging.getLogger(__name__)


class HandlerState(Enum):
    GREETING = "greeting"
    AWAIT_COMMAND = "await_command"
    DISPATCH = "dispatch"
    TERMINATED = "terminated"


class ConnectionHandler:
    """
    Per-connection protocol loop.

    Usage:
        handler = ConnectionHandler(mailbox, conn)
        handler.run()   # returns once the client quit or went away

    Args:
        mailbox: The shared Mailbox. The same instance is given to every
                 handler of a server.
        conn: The client connection. The handler closes it when done.
        stop_event: Shared server shutdown flag. When set, the session
                    ends after the current command as if QUIT was sent.
        command_log: Where per-command records go. None disables them.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        conn: Connection,
        stop_event: Optional[threading.Event] = None,
        command_log: Optional[CommandLogger] = None,
    ):
        self.mailbox = mailbox
        self.conn = conn
        self.stop_event = stop_event or threading.Event()
        self.command_log = command_log
        self.state = HandlerState.GREETING

        self._dispatch_table: Dict[Token, Callable[[Command], bytes]] = {
            Token.HELP: self._help,
            Token.DROP: self._drop,
            Token.GET: self._get,
            Token.LOOK: self._look,
            Token.PUT: self._put,
            Token.QUIT: self._quit,
            Token.UNSUPPORTED: self._unsupported,
        }

    # =========================================================================
    # SESSION LOOP
    # =========================================================================

    def run(self):
        """Serve the client until QUIT or a broken stream."""
        try:
            self._send(format_response(WELCOME))
            self.state = HandlerState.AWAIT_COMMAND

            command = self._next_command()
            while not command.is_quit:
                self.state = HandlerState.DISPATCH
                self._send(self.dispatch(command))
                self.state = HandlerState.AWAIT_COMMAND
                command = self._next_command()

            if command.implicit:
                logger.info(f"[{self.conn.id}] Broken pipe. Force close.")

            # The QUIT acknowledgement goes out even for an implicit QUIT
            self._send(self.dispatch(command))
            logger.info(f"[{self.conn.id}] QUIT from {self.conn.peer}")
        finally:
            self.state = HandlerState.TERMINATED
            try:
                self.conn.close()
            except OSError as e:
                logger.debug(f"[{self.conn.id}] Error while closing: {e}")

    def _next_command(self) -> Command:
        if self.stop_event.is_set():
            return Command(Token.QUIT, implicit=True)

        command = parse_command(self.conn.read_line())

        if self.stop_event.is_set() and not command.is_quit:
            return Command(Token.QUIT, raw=command.raw, implicit=True)
        return command

    def _send(self, data: bytes) -> bool:
        """Best effort: a failed send is logged by the connection, not raised."""
        return self.conn.send(data)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def dispatch(self, command: Command) -> bytes:
        """
        Execute one command against the mailbox.

        Args:
            command: A parsed Command.

        Returns:
            The framed response bytes, ready to send.
        """
        self.conn.state = ConnectionState.PROCESSING
        start_time = time.time()

        response = self._dispatch_table[command.token](command)

        if self.command_log is not None:
            self.command_log.log(CommandLog(
                connection_id=self.conn.id,
                client=self.conn.peer,
                command=command.token.value,
                implicit=command.implicit,
                payload_length=len(command.payload),
                occupied=self.mailbox.occupied,
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=CommandLogger.timestamp(),
            ))
        return response

    def _help(self, command: Command) -> bytes:
        logger.debug(f"[{self.conn.id}] HELP requested.")
        return format_response(Token.HELP)

    def _drop(self, command: Command) -> bytes:
        self.mailbox.drop()
        return format_response(Token.DROP)

    def _get(self, command: Command) -> bytes:
        message = self.mailbox.get()
        return format_response(Token.GET, NO_MESSAGE if message is None else bytes(message))

    def _look(self, command: Command) -> bytes:
        message = self.mailbox.look()
        return format_response(Token.LOOK, NO_MESSAGE if message is None else bytes(message))

    def _put(self, command: Command) -> bytes:
        self.mailbox.put(command.payload)
        return format_response(Token.PUT)

    def _quit(self, command: Command) -> bytes:
        return format_response(Token.QUIT)

    def _unsupported(self, command: Command) -> bytes:
        logger.debug(f"[{self.conn.id}] Unsupported command: {command.raw!r}")
        return format_response(Token.UNSUPPORTED)
