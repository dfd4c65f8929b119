"""
Exceptions raised by the cubbyhole server.

Protocol errors never show up here: an unknown command is answered with
"!NOT SUPPORTED" and the connection stays open. These exceptions cover the
failures that end a server run (bad configuration, a listening socket that
stops accepting, or no way left to start a connection thread).
"""


class CubbyholeError(Exception):
    """Base class for all cubbyhole server errors."""


class ConfigError(CubbyholeError, ValueError):
    """Raised when ServerConfig.validate() rejects a value."""


class AcceptError(CubbyholeError):
    """The listening socket failed while the server was still running."""


class DispatchError(CubbyholeError):
    """
    A worker thread could not be started for an accepted connection.

    This means the process has run out of execution contexts, which is
    fatal: the server shuts down instead of silently dropping clients.
    """
