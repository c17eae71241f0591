"""Real-time log tailing client with gap-free reconnects."""

from .buffer import EntryBuffer, OffsetTracker
from .channel import ChannelError, PushChannel
from .client import ConnectionState, LogTailClient, TailView
from .dispatcher import EventDispatcher, EventKind
from .models import (
    FROM_BEGINNING,
    InitializeMessage,
    IntegrityWarning,
    LogEntry,
    LogEventData,
    LoggedEventMessage,
)

__version__ = "0.1.0"

__all__ = [
    "ChannelError",
    "ConnectionState",
    "EntryBuffer",
    "EventDispatcher",
    "EventKind",
    "FROM_BEGINNING",
    "InitializeMessage",
    "IntegrityWarning",
    "LogEntry",
    "LogEventData",
    "LogTailClient",
    "LoggedEventMessage",
    "OffsetTracker",
    "PushChannel",
    "TailView",
]
