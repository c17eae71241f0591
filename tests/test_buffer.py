"""Tests for the entry buffer and offset tracker."""

import pytest

from logtail.buffer import DEFAULT_MAX_ENTRIES, EntryBuffer, OffsetTracker
from logtail.models import FROM_BEGINNING


class TestEntryBuffer:
    """Tests for EntryBuffer."""

    def test_default_capacity(self):
        """Test the default capacity is 500."""
        assert EntryBuffer().capacity == DEFAULT_MAX_ENTRIES == 500

    @pytest.mark.parametrize("capacity", [0, -1, 2.5, None, True, False])
    def test_rejects_invalid_capacity(self, capacity):
        """Test non-positive and non-integer capacities are rejected."""
        with pytest.raises(ValueError):
            EntryBuffer(capacity)

    def test_append_keeps_arrival_order(self, make_entry):
        """Test entries come back in the order they were appended."""
        buffer = EntryBuffer(5)
        for i in (1, 2, 3):
            buffer.append(make_entry(i))

        assert [e.sequence_id for e in buffer.snapshot()] == [1, 2, 3]

    def test_append_evicts_oldest(self, make_entry):
        """Capacity 3, ids 1..4 leaves the newest three."""
        buffer = EntryBuffer(3)
        for i in (1, 2, 3, 4):
            buffer.append(make_entry(i))

        assert [e.sequence_id for e in buffer.snapshot()] == [2, 3, 4]

    def test_length_never_exceeds_capacity(self, make_entry):
        """Test appending past capacity keeps the length at capacity."""
        buffer = EntryBuffer(7)
        for i in range(1, 50):
            buffer.append(make_entry(i))
            assert len(buffer) <= 7

        assert [e.sequence_id for e in buffer.snapshot()] == list(range(43, 50))

    def test_initialize_replaces_contents(self, make_entry):
        """Test initialize discards the previous entries."""
        buffer = EntryBuffer(5)
        buffer.append(make_entry(1))

        buffer.initialize([make_entry(10), make_entry(11)])

        assert [e.sequence_id for e in buffer.snapshot()] == [10, 11]

    def test_initialize_applies_capacity(self, make_entry):
        """Test initialize keeps only the newest entries that fit."""
        buffer = EntryBuffer(2)
        buffer.initialize([make_entry(i) for i in (1, 2, 3, 4)])

        assert [e.sequence_id for e in buffer.snapshot()] == [3, 4]

    def test_snapshot_is_a_copy(self, make_entry):
        """Test mutating a snapshot does not touch the buffer."""
        buffer = EntryBuffer(3)
        buffer.append(make_entry(1))

        snap = buffer.snapshot()
        snap.clear()

        assert len(buffer) == 1

    def test_clear(self, make_entry):
        """Test clear empties the buffer."""
        buffer = EntryBuffer(3)
        buffer.append(make_entry(1))
        buffer.clear()
        assert buffer.snapshot() == []


class TestOffsetTracker:
    """Tests for OffsetTracker."""

    def test_starts_from_beginning(self):
        """Test a new tracker reports the from-beginning sentinel."""
        tracker = OffsetTracker()
        assert tracker.current_offset() == FROM_BEGINNING

    def test_accept_records_latest(self):
        """Test accepting increasing ids moves the offset."""
        tracker = OffsetTracker()
        for i in (1, 2, 5, 9):
            tracker.accept(i)
            assert tracker.current == i

    @pytest.mark.parametrize("sequence_id", [3, 2])
    def test_accept_rejects_non_increasing(self, sequence_id):
        """Test equal or lower ids are refused."""
        tracker = OffsetTracker()
        tracker.accept(3)

        with pytest.raises(ValueError):
            tracker.accept(sequence_id)
        assert tracker.current == 3

    def test_advance_to_is_forward_only(self):
        """Test advance_to never moves the offset back."""
        tracker = OffsetTracker()

        assert tracker.advance_to(10) is True
        assert tracker.advance_to(4) is False
        assert tracker.current_offset() == 10
