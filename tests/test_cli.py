"""Tests for the command line interface."""

import argparse
import json
import logging
from unittest.mock import patch

import pytest

from logtail.__main__ import JSONFormatter, build_parser, cmd_status, format_entry
from logtail.client import LogTailClient
from logtail.models import InitializeMessage


class TestFormatting:
    """Tests for entry and log formatting."""

    def test_format_uses_server_formatting(self, make_entry):
        """Test the server's formatted line is printed as is."""
        entry = make_entry(1, logger_name="Server", level="WARN", message="disk low")

        assert format_entry(entry) == "WARN Server - disk low"

    def test_format_without_server_formatting(self, make_entry):
        """Test a line is built from the event when formatting is missing."""
        entry = make_entry(1)
        entry = type(entry)(sequence_id=1, formatted="", event=entry.event)

        line = format_entry(entry)

        assert "INFO" in line
        assert "A - message 1" in line

    def test_json_formatter(self):
        """Test log records are rendered as JSON objects."""
        record = logging.LogRecord(
            "logtail.client", logging.WARNING, __file__, 1, "dropped %s", (3,), None
        )

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["component"] == "logtail.client"
        assert data["message"] == "dropped 3"


class TestParser:
    """Tests for argument parsing."""

    def test_tail_arguments(self):
        """Test tail filter arguments are parsed."""
        args = build_parser().parse_args(["tail", "--logger", "A", "--level", "WARN", "-n", "20"])

        assert args.command == "tail"
        assert args.logger == "A"
        assert args.level == "WARN"
        assert args.lines == 20

    def test_status_arguments(self):
        """Test status output and timeout arguments are parsed."""
        args = build_parser().parse_args(["status", "--json", "--timeout", "1.5"])

        assert args.json is True
        assert args.timeout == 1.5


class TestStatusCommand:
    """Tests for the status command."""

    @pytest.mark.asyncio
    async def test_status_json(self, channel, make_entry, capsys):
        """Test status prints a JSON summary once caught up."""
        channel.on_subscribe = lambda group, offset: channel.push(InitializeMessage(
            loggers=("B", "A"),
            entries=(make_entry(1), make_entry(2)),
        ))
        client = LogTailClient(channel)
        args = argparse.Namespace(config=None, json=True, timeout=1.0)

        with patch("logtail.__main__.LogTailClient.from_config", return_value=client):
            code = await cmd_status(args)

        data = json.loads(capsys.readouterr().out)
        assert code == 0
        assert data["connected"] is True
        assert data["caught_up"] is True
        assert data["loggers"] == ["A", "B"]
        assert data["entries"] == 2
        assert data["offset"] == 2
        assert client.stopped

    @pytest.mark.asyncio
    async def test_status_unreachable(self, channel, capsys):
        """Test status reports failure when the server cannot be reached."""
        channel.fail_connects = 1000
        client = LogTailClient(channel, reconnect_max_delay=5.0)
        args = argparse.Namespace(config=None, json=False, timeout=0.05)

        with patch("logtail.__main__.LogTailClient.from_config", return_value=client):
            code = await cmd_status(args)

        out = capsys.readouterr().out
        assert code == 1
        assert "Not connected" in out
        assert client.stopped
