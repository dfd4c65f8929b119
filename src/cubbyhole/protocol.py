"""
=============================================================================
CUBBYHOLE PROTOCOL
=============================================================================

A tiny line-oriented text protocol. The client sends one command per line,
the server answers with a fixed response string, an optional payload and a
prompt that tells the client it may type again.

=============================================================================
COMMANDS
=============================================================================

    PUT <message>   Place a new message in the cubbyhole
    GET             Take the message out and display it
    LOOK            Display the message without taking it out
    DROP            Take the message out without displaying it
    HELP            Display the list of commands
    QUIT            Close the connection

Commands are case-insensitive. Line endings (CR, LF) are stripped before
anything else happens.

=============================================================================
WIRE FORMAT
=============================================================================

    Client                                 Server
      │                                       │
      │  ◄──── !HELLO: Welcome to ...\n>      │  (on connect)
      │                                       │
      │  ────► PUT hi there\r\n               │
      │  ◄──── !PUT: ok\n>                    │
      │                                       │
      │  ────► get\n                          │
      │  ◄──── !GET: hi there\n>              │
      │                                       │
      │  ────► QUIT\n                         │
      │  ◄──── !QUIT: ok\n>                   │
      │                                   (close)

Every response is:

    <response string> + <payload, GET/LOOK only> + "\\n> "

There is no length prefix: the prompt marks the end of a response.

=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class Token(Enum):
    """Normalized command keywords."""
    HELP = "HELP"
    DROP = "DROP"
    GET = "GET"
    LOOK = "LOOK"
    PUT = "PUT"
    QUIT = "QUIT"
    UNSUPPORTED = "UNSUPPORTED"


# Keywords that must make up the whole line. PUT is the only command
# that takes an argument.
BARE_COMMANDS = {
    b"HELP": Token.HELP,
    b"DROP": Token.DROP,
    b"GET": Token.GET,
    b"LOOK": Token.LOOK,
    b"QUIT": Token.QUIT,
}


# =============================================================================
# RESPONSE CATALOG
# =============================================================================
# These strings are part of the protocol. Existing clients match on them,
# so they must stay byte-for-byte identical.

WELCOME = b"!HELLO: Welcome to the Cubbyhole Server! Try 'help' for a list of commands"

HELP_TEXT = (
    b"!HELP:\n"
    b"The following commands are supported by this Cubbyhole:\n"
    b"\n"
    b"PUT <message>\t- Places a new message in the cubbyhole\n"
    b"GET\t\t- Takes the message out of the cubbyhole and displays it\n"
    b"LOOK\t\t- Displays the massage without taking it out of the cubbyhole\n"  # sic
    b"DROP\t\t- Takes the message out of the cubbyhole without displaying it\n"
    b"HELP\t\t- Displays this help message\n"
    b"QUIT\t\t- Terminates the connection\n"
)

NO_MESSAGE = b"<no message stored>"

PROMPT = b"\n> "

RESPONSES = {
    Token.HELP: HELP_TEXT,
    Token.DROP: b"!DROP: ok",
    Token.GET: b"!GET: ",
    Token.LOOK: b"!LOOK: ",
    Token.PUT: b"!PUT: ok",
    Token.QUIT: b"!QUIT: ok",
    Token.UNSUPPORTED: b"!NOT SUPPORTED",
}


@dataclass(frozen=True)
class Command:
    """
    One parsed client request.

    Attributes:
        token: The recognized keyword (or UNSUPPORTED).
        payload: Message text for PUT, empty for everything else.
        raw: The line exactly as received, line ending included.
        implicit: True for a QUIT the server made up because the read
                  came back empty (client went away).
    """
    token: Token
    payload: bytes = b""
    raw: bytes = b""
    implicit: bool = False

    @property
    def is_quit(self) -> bool:
        return self.token is Token.QUIT


def normalize(raw: bytes) -> bytes:
    """Strip every CR (0x0D) and LF (0x0A) byte from a line."""
    return raw.replace(b"\r", b"").replace(b"\n", b"")


def parse_command(raw: bytes) -> Command:
    """
    Turn one line of client input into a Command.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Parsing Steps                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   b"Put Hello World\\r\\n"                                           │
    │        │                                                             │
    │        ▼  normalize (drop CR/LF)                                     │
    │   b"Put Hello World"                                                 │
    │        │                                                             │
    │        ▼  split on first space                                       │
    │   word=b"Put"   rest=b"Hello World"                                  │
    │        │                                                             │
    │        ▼  upper-case the keyword only                                │
    │   Command(Token.PUT, payload=b"Hello World")                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Rules:
    - An empty line (or an empty read) becomes an implicit QUIT.
    - PUT keeps everything after the first space verbatim, original case
      included. "PUT" on its own carries an empty payload.
    - Every other keyword must be the entire line: "GET" works,
      "GET now" and "GETS" are NOT SUPPORTED.

    Args:
        raw: Bytes of one line as read from the connection.

    Returns:
        The parsed Command.
    """
    line = normalize(raw)
    if not line:
        return Command(Token.QUIT, raw=raw, implicit=True)

    word, _, rest = line.partition(b" ")
    word = word.upper()

    if word == b"PUT":
        return Command(Token.PUT, payload=rest, raw=raw)

    token = BARE_COMMANDS.get(line.upper())
    if token is None:
        return Command(Token.UNSUPPORTED, raw=raw)
    return Command(token, raw=raw)


def format_response(response: Union[Token, bytes], payload: Optional[bytes] = None) -> bytes:
    """
    Frame a response for the wire.

    Args:
        response: A Token (looked up in RESPONSES) or a literal response
                  string such as WELCOME.
        payload: Bytes echoed after the response string (GET/LOOK).

    Returns:
        response + payload + PROMPT
    """
    if isinstance(response, Token):
        response = RESPONSES[response]
    return response + (payload or b"") + PROMPT
