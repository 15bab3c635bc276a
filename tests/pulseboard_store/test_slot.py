"""Tests for pulseboard_store.slot."""

from __future__ import annotations

from pulseboard_store.slot import ObservableSlot


def _recording(slot: ObservableSlot[object]) -> list[tuple[object, object]]:
    events: list[tuple[object, object]] = []
    slot.subscribe(lambda new, old: events.append((new, old)))
    return events


class TestObservableSlot:
    """Tests for ObservableSlot."""

    def test_starts_empty(self) -> None:
        """A new slot holds nothing."""
        slot: ObservableSlot[int] = ObservableSlot("numbers")
        assert slot.is_empty
        assert slot.get() is None
        assert repr(slot) == "ObservableSlot('numbers', empty)"

    def test_set_notifies_with_new_and_old(self) -> None:
        """Observers receive (new, old), with None for the empty state."""
        slot: ObservableSlot[object] = ObservableSlot()
        events = _recording(slot)
        first = {"id": 1}
        second = {"id": 2}

        slot.set(first)
        slot.set(second)

        assert events == [(first, None), (second, first)]
        assert slot.get() is second

    def test_setting_same_object_is_silent(self) -> None:
        """Replacement is detected by identity."""
        slot: ObservableSlot[object] = ObservableSlot()
        value = {"id": 1}
        slot.set(value)
        events = _recording(slot)

        slot.set(value)

        assert events == []

    def test_equal_but_distinct_object_notifies(self) -> None:
        """An equal copy still counts as a new value."""
        slot: ObservableSlot[object] = ObservableSlot()
        slot.set({"id": 1})
        events = _recording(slot)

        slot.set({"id": 1})

        assert len(events) == 1

    def test_reset_notifies_once(self) -> None:
        """reset empties the slot; resetting an empty slot is silent."""
        slot: ObservableSlot[object] = ObservableSlot()
        value = {"id": 1}
        slot.set(value)
        events = _recording(slot)

        slot.reset()
        slot.reset()

        assert events == [(None, value)]
        assert slot.is_empty

    def test_none_is_a_value(self) -> None:
        """Setting None leaves the empty state."""
        slot: ObservableSlot[object] = ObservableSlot()
        slot.set(None)
        assert not slot.is_empty
        assert slot.get() is None

    def test_unsubscribe(self) -> None:
        """An unsubscribed observer is no longer called."""
        slot: ObservableSlot[int] = ObservableSlot()
        events: list[tuple[int | None, int | None]] = []
        unsubscribe = slot.subscribe(lambda new, old: events.append((new, old)))

        slot.set(1)
        unsubscribe()
        unsubscribe()
        slot.set(2)

        assert events == [(1, None)]
