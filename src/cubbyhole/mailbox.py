"""
=============================================================================
THE CUBBYHOLE (SHARED SINGLE-SLOT MAILBOX)
=============================================================================

The whole server revolves around one shared slot that holds at most one
message. Every client connection reads and writes the same slot.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Mailbox States                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                 put(msg)                                             │
    │      EMPTY ─────────────────► OCCUPIED ◄───┐                        │
    │        ▲                        │   │      │  put(msg): overwrite   │
    │        │    get() / drop()      │   └──────┘  look(): no change     │
    │        └────────────────────────┘                                   │
    │                                                                      │
    │   While EMPTY: get() and look() return None, drop() is a no-op.     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
NEVER BLOCKING
=============================================================================

This is NOT a producer/consumer queue:

    get() on an empty mailbox   → returns None right away
    put() on a full mailbox     → overwrites right away

Nobody ever waits for "room" or for "content" to appear, so the lock is
held only for the few instructions that read or swap the slot. Network
I/O always happens outside the lock.

=============================================================================
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Union


logger = logging.getLogger(__name__)


MAX_MESSAGE_SIZE = 255
"""Largest message the cubbyhole stores, in bytes. Longer input is cut."""


@dataclass(frozen=True)
class Message:
    """
    A bounded message body.

    The size limit is enforced here, at construction time, so a Message can
    never hold more than MAX_MESSAGE_SIZE bytes no matter where it came from.
    Oversized input is truncated silently, it is not an error.

        Message(b"x" * 300).data  →  first 255 bytes
    """
    data: bytes = b""

    def __post_init__(self):
        """Truncate to the size limit (frozen, so go through object)."""
        if len(self.data) > MAX_MESSAGE_SIZE:
            object.__setattr__(self, "data", bytes(self.data[:MAX_MESSAGE_SIZE]))

    @classmethod
    def from_text(cls, text: str) -> "Message":
        """Build a message from text, UTF-8 encoded then truncated."""
        return cls(text.encode("utf-8"))

    @classmethod
    def coerce(cls, value: Union["Message", bytes, str]) -> "Message":
        """Accept a Message, raw bytes or text."""
        if isinstance(value, Message):
            return value
        if isinstance(value, str):
            return cls.from_text(value)
        return cls(bytes(value))

    @property
    def text(self) -> str:
        """Message decoded as UTF-8 (a cut multi-byte char becomes U+FFFD)."""
        return self.data.decode("utf-8", errors="replace")

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)

    def __bool__(self) -> bool:
        return bool(self.data)


class Mailbox:
    """
    Thread-safe single-slot message store.

    One instance is created at server start and handed to every connection
    handler. All state changes go through put/get/drop under one lock:

        mailbox = Mailbox()
        mailbox.put("hello")
        mailbox.look()   # Message(b"hello"), still stored
        mailbox.get()    # Message(b"hello"), now empty
        mailbox.get()    # None

    None is the "no message stored" sentinel. The invariant holds at every
    point outside the lock: the mailbox is occupied exactly when it holds a
    non-empty message. Storing an empty message therefore leaves it empty.
    """

    def __init__(self):
        self._content: Optional[Message] = None
        self._occupied = False
        self._lock = threading.Lock()

    @property
    def occupied(self) -> bool:
        """True while an unread message is stored."""
        with self._lock:
            return self._occupied

    def put(self, message: Union[Message, bytes, str]) -> Message:
        """
        Store a message, replacing whatever was there.

        Always succeeds. An unread previous message is lost.

        Returns:
            The Message actually stored (after truncation).
        """
        message = Message.coerce(message)

        with self._lock:
            if message:
                self._content = message
                self._occupied = True
            else:
                self._content = None
                self._occupied = False

        if message:
            logger.debug(f"PUT requested. New cubby: {message.text!r}")
        else:
            logger.debug("PUT requested with empty message, cubby emptied")
        return message

    def get(self) -> Optional[Message]:
        """
        Take the message out of the mailbox.

        The read and the clear happen in one critical section, so two
        concurrent getters can never both receive the same message.

        Returns:
            The stored message, or None if the mailbox is empty.
        """
        with self._lock:
            message = self._content if self._occupied else None
            self._content = None
            self._occupied = False

        if message is None:
            logger.debug("GET requested, cubby empty")
        else:
            logger.debug(f"GET requested, cubby not empty. Getting and emptying: {message.text!r}")
        return message

    def look(self) -> Optional[Message]:
        """
        Return the stored message without removing it.

        Returns:
            The stored message, or None if the mailbox is empty.
        """
        with self._lock:
            message = self._content if self._occupied else None

        logger.debug(f"LOOK requested, cubby {'empty' if message is None else 'not empty'}")
        return message

    def drop(self) -> bool:
        """
        Discard the stored message without returning it.

        Returns:
            True if a message was discarded, False if already empty.
        """
        with self._lock:
            dropped = self._content if self._occupied else None
            self._content = None
            self._occupied = False

        if dropped is None:
            logger.debug("DROP requested, cubby empty")
            return False

        logger.debug(f"DROP requested, cubby not empty. Dropping: {dropped.text!r}")
        return True

    def __repr__(self) -> str:
        return f"Mailbox(occupied={self.occupied})"
