"""Bounded entry buffer and offset tracking for gap-free resumption."""

from collections import deque
from typing import Iterable

from .models import FROM_BEGINNING, LogEntry

DEFAULT_MAX_ENTRIES = 500


class EntryBuffer:
    """Fixed-capacity FIFO of recent log entries.

    Entries are kept in arrival order. Appending past capacity evicts
    from the head; access does not affect eviction.
    """

    def __init__(self, capacity: int = DEFAULT_MAX_ENTRIES):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise ValueError(f"Buffer capacity must be a positive integer, got {capacity!r}")
        self._capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, entry: LogEntry) -> None:
        """Append an entry at the tail, evicting the oldest if full."""
        self._entries.append(entry)

    def initialize(self, entries: Iterable[LogEntry]) -> None:
        """Replace the contents wholesale, keeping the newest entries that fit."""
        self._entries = deque(entries, maxlen=self._capacity)

    def snapshot(self) -> list[LogEntry]:
        """Get the current entries, oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class OffsetTracker:
    """Holds the sequence id of the last accepted entry."""

    def __init__(self) -> None:
        self._offset = FROM_BEGINNING

    def accept(self, sequence_id: int) -> None:
        """Record a newly accepted entry.

        Raises:
            ValueError: If the id does not move the offset forward.
        """
        if sequence_id <= self._offset:
            raise ValueError(
                f"Sequence id {sequence_id} is not after current offset {self._offset}"
            )
        self._offset = sequence_id

    def advance_to(self, sequence_id: int) -> bool:
        """Move the offset forward if the id is newer.

        Returns:
            True if the offset changed.
        """
        if sequence_id > self._offset:
            self._offset = sequence_id
            return True
        return False

    def current_offset(self) -> int:
        """Get the last accepted id, or FROM_BEGINNING if none yet."""
        return self._offset

    @property
    def current(self) -> int:
        return self._offset
