"""Observer notification for new entries and connection changes."""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Kinds of notifications sent to observers."""

    ENTRY_RECEIVED = "entry_received"  # payload: LogEntry
    CONNECTION_CHANGED = "connection_changed"  # payload: bool
    CATCH_UP = "catch_up"  # payload: TailView
    INTEGRITY_WARNING = "integrity_warning"  # payload: IntegrityWarning


Observer = Callable[[Any], Any]


class EventDispatcher:
    """Fans out notifications to registered observers.

    Observers may be plain callables or coroutine functions. Coroutines are
    scheduled on the running event loop. A failing observer is logged and
    does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._observers: dict[EventKind, list[Observer]] = {kind: [] for kind in EventKind}
        self._pending: set[asyncio.Task] = set()

    def register(self, kind: EventKind, callback: Observer) -> Callable[[], bool]:
        """Register an observer.

        Args:
            kind: Event kind to observe.
            callback: Called with the event payload.

        Returns:
            A callable that unregisters the observer.
        """
        self._observers[kind].append(callback)
        return lambda: self.unregister(kind, callback)

    def unregister(self, kind: EventKind, callback: Observer) -> bool:
        """Remove an observer.

        Returns:
            True if the observer was registered.
        """
        try:
            self._observers[kind].remove(callback)
        except ValueError:
            return False
        return True

    def observer_count(self, kind: EventKind) -> int:
        return len(self._observers[kind])

    def emit(self, kind: EventKind, payload: Any) -> None:
        """Notify every observer of a kind."""
        for callback in list(self._observers[kind]):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception as e:
                logger.error(f"Observer for {kind.value} failed: {e}", exc_info=True)

    def _schedule(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        if exc := task.exception():
            logger.error(f"Async observer failed: {exc}", exc_info=exc)
