"""Shared fixtures: an in-process push channel and entry factory."""

from datetime import datetime

import pytest

from logtail.channel import ChannelError, PushChannel
from logtail.client import LogTailClient
from logtail.models import LogEntry, LogEventData, LoggedEventMessage


class FakeChannel(PushChannel):
    """Push channel driven directly by the test, playing the server side."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_connects = 0
        self.close_during_subscribe = False
        self.on_subscribe = None
        self.connect_calls = 0
        self.close_calls = 0
        self.subscriptions: list[tuple[str, int]] = []
        self._open = False

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connects:
            self.fail_connects -= 1
            raise ChannelError("connection refused")
        self._open = True

    async def close(self) -> None:
        self.close_calls += 1
        self._open = False

    async def subscribe(self, group: str, since_offset: int) -> None:
        self.subscriptions.append((group, since_offset))
        if self.on_subscribe:
            self.on_subscribe(group, since_offset)
        if self.close_during_subscribe:
            self.close_during_subscribe = False
            self._open = False
            self._emit_closed("dropped during subscribe")

    @property
    def is_open(self) -> bool:
        return self._open

    def push(self, message) -> None:
        self._emit_message(message)

    def drop(self, reason: str = "connection lost") -> None:
        self._open = False
        self._emit_closed(reason)


def build_entry(
    sequence_id: int,
    logger_name: str = "A",
    level: str = "INFO",
    message: str | None = None,
) -> LogEntry:
    text = message or f"message {sequence_id}"
    return LogEntry(
        sequence_id=sequence_id,
        formatted=f"{level} {logger_name} - {text}",
        event=LogEventData(
            level=level,
            logger_name=logger_name,
            timestamp=datetime(2026, 1, 1, 12, 0, sequence_id % 60),
            message=text,
        ),
    )


def live_event(entry: LogEntry) -> LoggedEventMessage:
    return LoggedEventMessage(
        formatted=entry.formatted, event=entry.event, sequence_id=entry.sequence_id
    )


@pytest.fixture
def make_entry():
    """Factory for LogEntry objects."""
    return build_entry


@pytest.fixture
def make_event():
    """Factory for live event messages."""

    def factory(sequence_id: int, **kwargs) -> LoggedEventMessage:
        return live_event(build_entry(sequence_id, **kwargs))

    return factory


@pytest.fixture
def channel():
    """Create a fake push channel."""
    return FakeChannel()


@pytest.fixture
def client(channel):
    """Create a tail client with no reconnect delay."""
    return LogTailClient(channel, max_entries=3, reconnect_max_delay=0.0)
