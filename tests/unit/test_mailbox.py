"""
Unit tests for the shared mailbox.
"""

import threading

import pytest

from cubbyhole.mailbox import MAX_MESSAGE_SIZE, Mailbox, Message


class TestMessage:
    """Tests for the bounded Message type."""

    def test_short_message_kept(self):
        """Test that messages under the limit are stored as-is."""
        assert Message(b"hello").data == b"hello"

    def test_truncated_at_construction(self):
        """Test that oversized data is cut to MAX_MESSAGE_SIZE bytes."""
        data = bytes(range(256)) + b"x" * 44
        message = Message(data)

        assert len(message) == MAX_MESSAGE_SIZE == 255
        assert message.data == data[:255]

    def test_from_text_encodes_utf8(self):
        """Test building a message from text."""
        message = Message.from_text("grüße")
        assert message.data == "grüße".encode("utf-8")
        assert message.text == "grüße"

    def test_text_replaces_cut_multibyte_char(self):
        """Test that a truncated multi-byte character decodes safely."""
        message = Message.from_text("a" * 254 + "é")
        assert len(message) == 255
        assert message.text == "a" * 254 + "�"

    def test_coerce(self):
        """Test coercion from str, bytes and Message."""
        original = Message(b"x")
        assert Message.coerce(original) is original
        assert Message.coerce("x") == original
        assert Message.coerce(b"x") == original
        assert Message.coerce(bytearray(b"x")) == original

    def test_empty_message_is_falsy(self):
        assert not Message()
        assert Message(b" ")

    def test_immutable(self):
        message = Message(b"x")
        with pytest.raises(AttributeError):
            message.data = b"y"


class TestMailbox:
    """Tests for Mailbox operations."""

    def test_empty_read(self, mailbox: Mailbox):
        """Test that an empty mailbox returns the sentinel everywhere."""
        assert mailbox.get() is None
        assert mailbox.look() is None
        assert mailbox.drop() is False
        assert mailbox.occupied is False

    def test_round_trip(self, mailbox: Mailbox):
        """Test put then get returns the message exactly once."""
        mailbox.put("hello")

        assert mailbox.get() == Message(b"hello")
        assert mailbox.get() is None
        assert mailbox.occupied is False

    def test_look_is_not_destructive(self, mailbox: Mailbox):
        """Test that look() can be repeated and get() still works after."""
        mailbox.put("x")

        assert mailbox.look() == Message(b"x")
        assert mailbox.look() == Message(b"x")
        assert mailbox.occupied is True
        assert mailbox.get() == Message(b"x")

    def test_overwrite(self, mailbox: Mailbox):
        """Test that a second put replaces the first message."""
        mailbox.put("a")
        mailbox.put("b")

        assert mailbox.get() == Message(b"b")
        assert mailbox.get() is None

    def test_truncation(self, mailbox: Mailbox):
        """Test that a 300-byte payload comes back as its first 255 bytes."""
        payload = b"".join(bytes([65 + i % 26]) for i in range(300))
        stored = mailbox.put(payload)

        assert len(stored) == 255
        assert mailbox.get().data == payload[:255]

    def test_drop(self, mailbox: Mailbox):
        """Test that drop discards the message."""
        mailbox.put("secret")

        assert mailbox.drop() is True
        assert mailbox.occupied is False
        assert mailbox.look() is None
        assert mailbox.drop() is False

    def test_put_empty_message_leaves_mailbox_empty(self, mailbox: Mailbox):
        """Test that an empty put vacates rather than storing nothing."""
        mailbox.put("old")
        mailbox.put(b"")

        assert mailbox.occupied is False
        assert mailbox.get() is None

    def test_put_accepts_message(self, mailbox: Mailbox):
        message = Message(b"bytes \x00 inside")
        mailbox.put(message)
        assert mailbox.get() is message

    def test_repr(self, mailbox: Mailbox):
        assert repr(mailbox) == "Mailbox(occupied=False)"


class TestMailboxConcurrency:
    """Tests for mutual exclusion under concurrent access."""

    def test_concurrent_puts_leave_one_value(self, mailbox: Mailbox):
        """Test N concurrent puts leave exactly one of the N values."""
        values = {f"value-{i:03d}-".ljust(200, chr(65 + i % 26)).encode() for i in range(50)}
        barrier = threading.Barrier(len(values))

        def writer(value: bytes):
            barrier.wait()
            mailbox.put(value)

        threads = [threading.Thread(target=writer, args=(v,)) for v in values]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        message = mailbox.get()
        assert message is not None
        assert message.data in values
        assert mailbox.get() is None

    def test_concurrent_gets_deliver_message_once(self, mailbox: Mailbox):
        """Test that a stored message is received by exactly one getter."""
        for _ in range(20):
            mailbox.put("only once")
            results = []
            barrier = threading.Barrier(8)

            def reader():
                barrier.wait()
                results.append(mailbox.get())

            threads = [threading.Thread(target=reader) for _ in range(8)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            delivered = [r for r in results if r is not None]
            assert delivered == [Message(b"only once")]
