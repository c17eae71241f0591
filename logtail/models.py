"""Data model for log entries received from the log feed."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Offset value meaning "nothing received yet, replay from the beginning"
FROM_BEGINNING = 0

# Severity order used when filtering by minimum level
LEVEL_ORDER = {
    "TRACE": 0,
    "DEBUG": 1,
    "INFO": 2,
    "WARN": 3,
    "WARNING": 3,
    "ERROR": 4,
    "FATAL": 5,
    "CRITICAL": 5,
}


def level_rank(level: str) -> int:
    """Get the numeric rank of a level name, unknown levels rank as INFO."""
    return LEVEL_ORDER.get(level.upper(), LEVEL_ORDER["INFO"])


@dataclass(frozen=True)
class LogEventData:
    """Structured payload of a single log event."""

    level: str
    logger_name: str
    timestamp: datetime
    message: str
    exception: str | None = None
    thread_name: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "level": self.level,
            "logger_name": self.logger_name,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "exception": self.exception,
            "thread_name": self.thread_name,
            "properties": dict(self.properties),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEventData":
        """Create from dictionary."""
        return cls(
            level=data["level"],
            logger_name=data["logger_name"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            message=data.get("message", ""),
            exception=data.get("exception"),
            thread_name=data.get("thread_name"),
            properties=data.get("properties") or {},
        )


@dataclass(frozen=True)
class LogEntry:
    """A log event as accepted by the client, with its server sequence id."""

    sequence_id: int
    formatted: str
    event: LogEventData

    @property
    def level(self) -> str:
        return self.event.level

    @property
    def logger_name(self) -> str:
        return self.event.logger_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.sequence_id,
            "formatted": self.formatted,
            "event": self.event.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEntry":
        """Create from dictionary."""
        return cls(
            sequence_id=int(data["id"]),
            formatted=data.get("formatted", ""),
            event=LogEventData.from_dict(data["event"]),
        )


@dataclass(frozen=True)
class InitializeMessage:
    """Catch-up payload sent by the server once per connection."""

    loggers: tuple[str, ...]
    entries: tuple[LogEntry, ...]


@dataclass(frozen=True)
class LoggedEventMessage:
    """A single live (or replayed) log event."""

    formatted: str
    event: LogEventData
    sequence_id: int

    def to_entry(self) -> LogEntry:
        return LogEntry(
            sequence_id=self.sequence_id,
            formatted=self.formatted,
            event=self.event,
        )


InboundMessage = InitializeMessage | LoggedEventMessage


@dataclass(frozen=True)
class IntegrityWarning:
    """A live event was dropped because it broke the feed's ordering rules."""

    reason: str
    sequence_id: int
    offset: int


def parse_message(data: dict[str, Any]) -> InboundMessage:
    """Parse a decoded wire message into a typed inbound message.

    Args:
        data: Decoded JSON object with a "type" field.

    Returns:
        InitializeMessage or LoggedEventMessage.

    Raises:
        ValueError: If the type is unknown or required fields are missing.
    """
    msg_type = data.get("type")

    try:
        if msg_type == "initialize":
            return InitializeMessage(
                loggers=tuple(data.get("loggers", [])),
                entries=tuple(LogEntry.from_dict(e) for e in data.get("entries", [])),
            )
        if msg_type == "logged_event":
            return LoggedEventMessage(
                formatted=data.get("formatted", ""),
                event=LogEventData.from_dict(data["event"]),
                sequence_id=int(data["id"]),
            )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed {msg_type} message: {e}") from e

    raise ValueError(f"Unknown message type: {msg_type!r}")
