"""Observable values: a readable snapshot plus change subscriptions."""
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]
Unsubscribe = Callable[[], None]


class ObservableValue(Generic[T]):
    """
    Holds a value and notifies listeners when it changes.

    Listeners are called synchronously with the new value. A failing listener is
    logged and does not prevent the remaining listeners from running.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._listeners: list[Listener[T]] = []

    def get(self) -> T:
        """Return the current value."""
        return self._value

    def set(self, value: T) -> bool:
        """
        Replace the value and notify listeners.

        Returns:
            True if the value changed and listeners were notified.
        """
        if value == self._value:
            return False
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Observable listener %r failed", listener)
        return True

    def subscribe(self, listener: Listener[T]) -> Unsubscribe:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        """Number of registered listeners."""
        return len(self._listeners)

    def readonly(self) -> "ObservableView[T]":
        """Return a view that exposes get/subscribe only."""
        return ObservableView(self)


class ObservableView(Generic[T]):
    """Read-only facade over an ObservableValue."""

    def __init__(self, source: ObservableValue[T]) -> None:
        self._source = source

    def get(self) -> T:
        """Return the current value."""
        return self._source.get()

    def subscribe(self, listener: Listener[T]) -> Unsubscribe:
        """Register a listener and return a callable that removes it."""
        return self._source.subscribe(listener)
