"""Observable single-value cells.

An :class:`ObservableSlot` holds the current value of one piece of loaded
state, or nothing. Subscribers are called synchronously with
``(new, old)`` whenever the held value is replaced by a different object;
the empty state is reported as ``None``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Final

__all__ = ["ObservableSlot", "SlotObserver"]

type SlotObserver[T] = Callable[[T | None, T | None], None]

_EMPTY: Final = object()


class ObservableSlot[T]:
    """A value holder that notifies observers when its value is replaced.

    Replacement is detected by identity, so setting the object the slot
    already holds is silent while setting an equal but distinct object
    notifies. :meth:`reset` moves the slot to the empty state and notifies
    unless it is already empty.

    Parameters
    ----------
    name : str, optional
        Label used for diagnostics. Defaults to ``"slot"``.
    """

    def __init__(self, name: str = "slot") -> None:
        self.name = name
        self._value: T | object = _EMPTY
        self._observers: list[SlotObserver[T]] = []

    @property
    def is_empty(self) -> bool:
        return self._value is _EMPTY

    def get(self) -> T | None:
        """Return the held value, or None when the slot is empty."""
        if self._value is _EMPTY:
            return None
        return self._value  # type: ignore[return-value]

    def set(self, value: T) -> None:
        """Replace the held value and notify observers if the object changed."""
        old = self._value
        if old is value:
            return
        self._value = value
        self._notify(value, old)

    def reset(self) -> None:
        """Empty the slot, notifying observers if it held a value."""
        old = self._value
        if old is _EMPTY:
            return
        self._value = _EMPTY
        self._notify(_EMPTY, old)

    def subscribe(self, observer: SlotObserver[T]) -> Callable[[], None]:
        """Register ``observer``; return a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, new: object, old: object) -> None:
        new_value = None if new is _EMPTY else new
        old_value = None if old is _EMPTY else old
        for observer in tuple(self._observers):
            observer(new_value, old_value)  # type: ignore[arg-type]

    def __repr__(self) -> str:
        state = "empty" if self.is_empty else repr(self._value)
        return f"ObservableSlot({self.name!r}, {state})"
