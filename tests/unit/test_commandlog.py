"""
Unit tests for per-command log entries.
"""

import logging

from cubbyhole.commandlog import CommandLog, CommandLogger


def make_entry(**overrides) -> CommandLog:
    fields = dict(
        connection_id="abcd1234",
        client="127.0.0.1:50000",
        command="PUT",
        implicit=False,
        payload_length=8,
        occupied=True,
        duration_ms=0.1234,
        timestamp="18/Oct/2026:12:00:00 +0000",
    )
    fields.update(overrides)
    return CommandLog(**fields)


class TestCommandLog:

    def test_to_text(self):
        assert make_entry().to_text() == (
            "127.0.0.1:50000 [18/Oct/2026:12:00:00 +0000] [abcd1234] PUT 8 occupied 0.12ms"
        )

    def test_implicit_quit_is_marked(self):
        entry = make_entry(command="QUIT", implicit=True, payload_length=0, occupied=False)
        assert "QUIT(implicit) 0 empty" in entry.to_text()

    def test_to_dict_rounds_duration(self):
        data = make_entry().to_dict()
        assert data["duration_ms"] == 0.12
        assert data["command"] == "PUT"
        assert set(data) == {
            "connection_id", "client", "command", "implicit",
            "payload_length", "occupied", "duration_ms", "timestamp",
        }


class TestCommandLogger:

    def test_disabled_level_emits_nothing(self, caplog):
        with caplog.at_level(logging.WARNING, logger="cubbyhole.commands"):
            CommandLogger().log(make_entry())
        assert not [r for r in caplog.records if r.name == "cubbyhole.commands"]

    def test_custom_level(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="cubbyhole.commands"):
            CommandLogger(log_level=logging.DEBUG).log(make_entry())
        assert caplog.records[-1].levelno == logging.DEBUG
