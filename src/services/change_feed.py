"""
Change feed contract and an in-memory implementation.

A change feed pushes raw `postgres_changes` payloads for the authenticated user.
Delivery is at least once, not ordered, and may silently miss events while
disconnected.
"""
import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from typing import Any, Protocol

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Mapping[str, Any]], None]


class FeedSubscription(Protocol):
    """Handle to an open subscription."""

    async def unsubscribe(self) -> None: ...


class ChangeFeed(Protocol):
    """Source of change payloads scoped to one user."""

    async def subscribe(self, user_id: str, callback: ChangeCallback) -> FeedSubscription: ...


class InMemorySubscription:
    """Subscription handle returned by InMemoryChangeFeed."""

    def __init__(self, feed: "InMemoryChangeFeed", user_id: str, callback: ChangeCallback) -> None:
        self.user_id = user_id
        self.callback = callback
        self._feed = feed
        self.closed = False

    async def unsubscribe(self) -> None:
        """Stop receiving payloads. Safe to call more than once."""
        if not self.closed:
            self.closed = True
            self._feed._remove(self)


class InMemoryChangeFeed:
    """
    Change feed held in process memory.

    `publish()` delivers a payload synchronously to every open subscription of the
    given user. Used by tests and by hosts that bridge another transport into it.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[InMemorySubscription]] = defaultdict(list)

    async def subscribe(self, user_id: str, callback: ChangeCallback) -> InMemorySubscription:
        """Open a subscription for a user."""
        subscription = InMemorySubscription(self, user_id, callback)
        self._subscriptions[user_id].append(subscription)
        logger.debug("Change feed subscription opened for user %s", user_id)
        return subscription

    def publish(self, user_id: str, payload: Mapping[str, Any]) -> int:
        """
        Deliver a payload to the user's subscribers.

        Returns:
            Number of subscriptions the payload was delivered to.
        """
        subscriptions = list(self._subscriptions.get(user_id, ()))
        for subscription in subscriptions:
            subscription.callback(payload)
        return len(subscriptions)

    def subscription_count(self, user_id: str | None = None) -> int:
        """Count open subscriptions, for one user or overall."""
        if user_id is not None:
            return len(self._subscriptions.get(user_id, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _remove(self, subscription: InMemorySubscription) -> None:
        subscriptions = self._subscriptions.get(subscription.user_id, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            self._subscriptions.pop(subscription.user_id, None)
        logger.debug("Change feed subscription closed for user %s", subscription.user_id)
