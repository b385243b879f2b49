"""Side channel for user-visible notifications (toasts)."""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

NotificationLevel = Literal["error", "info"]


@dataclass(frozen=True)
class Notification:
    """A transient message for the user."""

    level: NotificationLevel
    message: str
    detail: str | None = None


NotificationListener = Callable[[Notification], None]


class Notifier:
    """Fan-out of notifications to registered listeners."""

    def __init__(self) -> None:
        self._listeners: list[NotificationListener] = []

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, notification: Notification) -> None:
        """Deliver a notification to every listener."""
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener %r failed", listener)

    def error(self, message: str, detail: str | None = None) -> Notification:
        """Publish an error notification."""
        notification = Notification("error", message, detail)
        self.notify(notification)
        return notification
