"""Push channel interface used by the tail client."""

from abc import ABC, abstractmethod
from typing import Callable

from .models import InboundMessage

MessageHandler = Callable[[InboundMessage], None]
ClosedHandler = Callable[[str | None], None]


class ChannelError(ConnectionError):
    """Raised when the push channel cannot connect or send."""


class PushChannel(ABC):
    """A persistent connection over which the log server pushes messages.

    Implementations must invoke the bound handlers on the event loop that
    called connect(). on_closed is only signalled for closures the client
    did not request through close().
    """

    def __init__(self) -> None:
        self._on_message: MessageHandler | None = None
        self._on_closed: ClosedHandler | None = None

    def bind(self, on_message: MessageHandler, on_closed: ClosedHandler) -> None:
        """Attach the handlers for inbound messages and channel loss."""
        self._on_message = on_message
        self._on_closed = on_closed

    def _emit_message(self, message: InboundMessage) -> None:
        if self._on_message:
            self._on_message(message)

    def _emit_closed(self, reason: str | None = None) -> None:
        if self._on_closed:
            self._on_closed(reason)

    @abstractmethod
    async def connect(self) -> None:
        """Open the channel.

        Raises:
            ChannelError: If the handshake fails.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the channel without signalling on_closed."""
        pass

    @abstractmethod
    async def subscribe(self, group: str, since_offset: int) -> None:
        """Ask the server for events of a group after an offset.

        Raises:
            ChannelError: If the request cannot be sent.
        """
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the channel is currently open."""
        pass
