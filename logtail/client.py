"""Log tail client: connection state machine, catch-up and live entries.

The client owns one push channel. It connects, subscribes from the last
accepted offset, ingests the server's catch-up payload and then accepts
live events into a bounded buffer. When the channel drops it waits a
jittered delay and reconnects, forever, until stop() is called.
"""

import asyncio
import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from .buffer import DEFAULT_MAX_ENTRIES, EntryBuffer, OffsetTracker
from .channel import ChannelError, PushChannel
from .dispatcher import EventDispatcher, EventKind
from .models import (
    InboundMessage,
    InitializeMessage,
    IntegrityWarning,
    LogEntry,
    LoggedEventMessage,
    level_rank,
)

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "MyGroup"
DEFAULT_RECONNECT_MAX_DELAY = 5.0


class ConnectionState(Enum):
    """Lifecycle state of the push channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}
    ),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
}


@dataclass(frozen=True)
class TailView:
    """Consistent snapshot of the client's state."""

    state: ConnectionState
    loggers: frozenset[str]
    entries: tuple[LogEntry, ...]
    offset: int


class LogTailClient:
    """Self-healing subscriber to a push-based log feed."""

    def __init__(
        self,
        channel: PushChannel,
        group: str = DEFAULT_GROUP,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        reconnect_max_delay: float = DEFAULT_RECONNECT_MAX_DELAY,
    ):
        """Initialize the client.

        Args:
            channel: Push channel to the log server. Owned by the client.
            group: Subscription group requested from the server.
            max_entries: Capacity of the entry buffer.
            reconnect_max_delay: Upper bound (exclusive) of the reconnect
                jitter in seconds.
        """
        if reconnect_max_delay < 0:
            raise ValueError(
                f"reconnect_max_delay must not be negative, got {reconnect_max_delay}"
            )

        self.channel = channel
        self.group = group
        self.reconnect_max_delay = reconnect_max_delay
        self.dispatcher = EventDispatcher()

        # Buffer, offset, loggers and the catch-up flag change together
        self._lock = threading.RLock()
        self._buffer = EntryBuffer(max_entries)
        self._offset = OffsetTracker()
        self._loggers: frozenset[str] = frozenset()
        self._initialized = False

        self._state = ConnectionState.DISCONNECTED
        self._stopped = False
        self._handshake_lost = False
        self._reconnect_task: asyncio.Task | None = None
        self._ready = asyncio.Event()

        # Statistics
        self._entries_received = 0
        self._entries_dropped = 0
        self._reconnect_attempts = 0
        self._catch_ups = 0
        self._last_entry_at: datetime | None = None

        self._message_handlers: dict[type, Callable[[Any], None]] = {
            InitializeMessage: self._handle_initialize,
            LoggedEventMessage: self._handle_logged_event,
        }

        channel.bind(self._on_channel_message, self._on_channel_closed)

    @classmethod
    def from_config(
        cls, config: "Config", channel: PushChannel | None = None
    ) -> "LogTailClient":
        """Build a client from configuration.

        Args:
            config: Loaded configuration.
            channel: Optional channel; defaults to an MQTT push channel.
        """
        if channel is None:
            from .mqtt_channel import MQTTPushChannel

            channel = MQTTPushChannel(config.mqtt, client_name=config.client.name)

        return cls(
            channel,
            group=config.subscription.group,
            max_entries=config.subscription.max_entries,
            reconnect_max_delay=config.subscription.reconnect_max_delay,
        )

    # ==================== Lifecycle ====================

    async def start(self) -> None:
        """Issue the first connection attempt.

        Failures are retried in the background; this never raises for
        connectivity problems.
        """
        await self.connect()

    async def connect(self) -> None:
        """Connect and subscribe from the current offset.

        Does nothing unless the client is disconnected and not stopped.
        """
        if self._stopped or self._state is not ConnectionState.DISCONNECTED:
            return

        self._transition(ConnectionState.CONNECTING)
        self._ready.set()
        with self._lock:
            self._initialized = False
        self._handshake_lost = False

        try:
            await self.channel.connect()
            offset = self.current_offset
            logger.info(f"Subscribing to group '{self.group}' after offset {offset}")
            await self.channel.subscribe(self.group, offset)
            if self._handshake_lost:
                raise ChannelError("Channel closed during handshake")
        except (ChannelError, OSError) as e:
            logger.warning(f"Connection attempt failed: {e}")
            await self._abort_handshake()
            return
        except Exception as e:
            logger.error(f"Unexpected error during connection attempt: {e}", exc_info=True)
            await self._abort_handshake()
            return

        if self._stopped:
            # stop() ran while the handshake was in flight
            await self._close_channel()
            return

        self._transition(ConnectionState.CONNECTED)
        logger.info("Connected to log feed")
        self.dispatcher.emit(EventKind.CONNECTION_CHANGED, True)

    async def stop(self) -> None:
        """Close the channel and stop reconnecting. Terminal."""
        if self._stopped:
            return
        self._stopped = True

        task = self._reconnect_task
        self._reconnect_task = None
        if task and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        was_connected = self._state is ConnectionState.CONNECTED
        await self._close_channel()

        if self._state is not ConnectionState.DISCONNECTED:
            self._transition(ConnectionState.DISCONNECTED)
        if was_connected:
            self.dispatcher.emit(EventKind.CONNECTION_CHANGED, False)

        logger.info("Log tail client stopped")

    async def _close_channel(self) -> None:
        try:
            await self.channel.close()
        except (ChannelError, OSError) as e:
            logger.warning(f"Error closing push channel: {e}")

    async def _abort_handshake(self) -> None:
        await self._close_channel()

        if self._stopped:
            return

        self._transition(ConnectionState.DISCONNECTED)
        self.dispatcher.emit(EventKind.CONNECTION_CHANGED, False)
        self._schedule_reconnect()

    def _on_channel_closed(self, reason: str | None) -> None:
        if self._stopped:
            return

        if self._state is ConnectionState.CONNECTING:
            # connect() sees this after the handshake and backs off
            self._handshake_lost = True
            return

        if self._state is not ConnectionState.CONNECTED:
            return

        logger.warning(f"Push channel closed: {reason or 'no reason given'}")
        self._transition(ConnectionState.DISCONNECTED)
        self.dispatcher.emit(EventKind.CONNECTION_CHANGED, False)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._stopped:
            return

        delay = self.reconnect_delay()
        logger.info(f"Reconnecting in {delay:.2f}s")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_attempts += 1
        await self.connect()

    def reconnect_delay(self) -> float:
        """Draw a reconnect delay uniformly from [0, reconnect_max_delay)."""
        return random.random() * self.reconnect_max_delay

    def _transition(self, new_state: ConnectionState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Invalid connection transition {self._state.value} -> {new_state.value}"
            )
        logger.debug(f"Connection state {self._state.value} -> {new_state.value}")
        with self._lock:
            self._state = new_state

    # ==================== Inbound messages ====================

    def _on_channel_message(self, message: InboundMessage) -> None:
        if self._stopped or self._state is ConnectionState.DISCONNECTED:
            logger.debug(f"Ignoring {type(message).__name__} while disconnected")
            return

        handler = self._message_handlers.get(type(message))
        if handler is None:
            logger.warning(f"Ignoring unsupported message {type(message).__name__}")
            return
        handler(message)

    def _handle_initialize(self, message: InitializeMessage) -> None:
        with self._lock:
            self._loggers = frozenset(message.loggers)
            self._buffer.initialize(message.entries)
            if message.entries:
                last_id = message.entries[-1].sequence_id
                if last_id < self._offset.current:
                    logger.warning(
                        f"Catch-up ends at {last_id}, behind offset {self._offset.current}"
                    )
                self._offset.advance_to(last_id)
            self._initialized = True
            self._catch_ups += 1
            view = self._view_locked()

        logger.info(
            f"Catch-up: {len(view.loggers)} loggers, "
            f"{len(view.entries)} cached entries, offset {view.offset}"
        )
        self.dispatcher.emit(EventKind.CATCH_UP, view)

    def _handle_logged_event(self, message: LoggedEventMessage) -> None:
        entry = message.to_entry()
        reason = None

        with self._lock:
            offset = self._offset.current
            if not self._initialized:
                reason = "event received before initialize"
            elif entry.sequence_id <= offset:
                reason = "sequence id not after current offset"
            else:
                self._buffer.append(entry)
                self._offset.accept(entry.sequence_id)
                self._entries_received += 1
                self._last_entry_at = datetime.now()

            if reason:
                self._entries_dropped += 1

        if reason:
            logger.warning(
                f"Dropping event {entry.sequence_id}: {reason} (offset {offset})"
            )
            self.dispatcher.emit(
                EventKind.INTEGRITY_WARNING,
                IntegrityWarning(reason=reason, sequence_id=entry.sequence_id, offset=offset),
            )
            return

        self.dispatcher.emit(EventKind.ENTRY_RECEIVED, entry)

    # ==================== Observer API ====================

    def on_entry_received(self, callback: Callable[[LogEntry], Any]) -> Callable[[], bool]:
        return self.dispatcher.register(EventKind.ENTRY_RECEIVED, callback)

    def on_connection_changed(self, callback: Callable[[bool], Any]) -> Callable[[], bool]:
        return self.dispatcher.register(EventKind.CONNECTION_CHANGED, callback)

    def on_catch_up(self, callback: Callable[[TailView], Any]) -> Callable[[], bool]:
        return self.dispatcher.register(EventKind.CATCH_UP, callback)

    def on_integrity_warning(
        self, callback: Callable[[IntegrityWarning], Any]
    ) -> Callable[[], bool]:
        return self.dispatcher.register(EventKind.INTEGRITY_WARNING, callback)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the client is connected and subscribed."""
        return self._state is ConnectionState.CONNECTED

    @property
    def stopped(self) -> bool:
        """True once stop() was called; no further reconnects happen."""
        return self._stopped

    @property
    def ready(self) -> asyncio.Event:
        """Set once the first connection attempt has been issued."""
        return self._ready

    @property
    def max_entries(self) -> int:
        return self._buffer.capacity

    @property
    def current_offset(self) -> int:
        with self._lock:
            return self._offset.current_offset()

    def loggers(self) -> frozenset[str]:
        """Get the logger names known from the last catch-up."""
        with self._lock:
            return self._loggers

    def snapshot(self) -> list[LogEntry]:
        """Get the buffered entries, oldest first."""
        with self._lock:
            return self._buffer.snapshot()

    def view(self) -> TailView:
        """Get loggers, entries, offset and state as one consistent view."""
        with self._lock:
            return self._view_locked()

    def _view_locked(self) -> TailView:
        return TailView(
            state=self._state,
            loggers=self._loggers,
            entries=tuple(self._buffer.snapshot()),
            offset=self._offset.current_offset(),
        )

    def query(
        self,
        logger_name: str | None = None,
        min_level: str | None = None,
        limit: int | None = None,
    ) -> list[LogEntry]:
        """Filter the buffered entries.

        Args:
            logger_name: Only entries from this logger.
            min_level: Only entries at or above this level.
            limit: Keep only the newest N matches.

        Returns:
            Matching entries, oldest first.
        """
        entries = self.snapshot()

        if logger_name:
            entries = [e for e in entries if e.logger_name == logger_name]
        if min_level:
            threshold = level_rank(min_level)
            entries = [e for e in entries if level_rank(e.level) >= threshold]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []

        return entries

    def get_status(self) -> dict[str, Any]:
        """Get current connection and buffer statistics."""
        with self._lock:
            return {
                "state": self._state.value,
                "connected": self._state is ConnectionState.CONNECTED,
                "stopped": self._stopped,
                "group": self.group,
                "offset": self._offset.current_offset(),
                "entries": len(self._buffer),
                "max_entries": self._buffer.capacity,
                "loggers": len(self._loggers),
                "entries_received": self._entries_received,
                "entries_dropped": self._entries_dropped,
                "reconnect_attempts": self._reconnect_attempts,
                "catch_ups": self._catch_ups,
                "last_entry_at": (
                    self._last_entry_at.isoformat() if self._last_entry_at else None
                ),
            }
