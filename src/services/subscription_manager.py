"""
Lifecycle of the change feed subscription.

One subscription per active session: it is opened when a user session becomes
available and fully torn down before another one is opened for a different identity.
Handlers can be swapped at any time without resubscribing.

The manager does not promise completeness. Events are missed while disconnected and
a full refetch by the host is the recovery path.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from schemas.bookmark import Bookmark
from schemas.change_event import ChangeEvent, parse_change_event
from schemas.collection import Collection
from services.change_feed import ChangeFeed, FeedSubscription
from services.reconciliation_store import ReconciliationStore
from shared.api_errors import describe_failure

logger = logging.getLogger(__name__)

BookmarkResolver = Callable[[str], Awaitable[Bookmark | None]]


@dataclass
class FeedHandlers:
    """Callbacks for parsed change events. Missing handlers ignore the event."""

    on_bookmark_insert: Callable[[Bookmark], Any] | None = None
    on_bookmark_update: Callable[[Bookmark], Any] | None = None
    on_bookmark_delete: Callable[[str], Any] | None = None
    on_collection_insert: Callable[[Collection], Any] | None = None
    on_collection_update: Callable[[Collection], Any] | None = None
    on_collection_delete: Callable[[str], Any] | None = None

    @classmethod
    def for_store(cls, store: ReconciliationStore) -> "FeedHandlers":
        """Handlers that merge every event into a store."""
        return cls(
            on_bookmark_insert=store.merge_external_insert,
            on_bookmark_update=store.merge_external_update,
            on_bookmark_delete=lambda bookmark_id: store.merge_external_delete(
                "bookmark", bookmark_id,
            ),
            on_collection_insert=store.merge_external_insert,
            on_collection_update=store.merge_external_update,
            on_collection_delete=lambda collection_id: store.merge_external_delete(
                "collection", collection_id,
            ),
        )

    def dispatch(self, event: ChangeEvent) -> None:
        """Call the handler matching the event's entity and event kinds."""
        handler = getattr(self, f"on_{event.entity_kind}_{event.event_kind}")
        if handler is None:
            return
        if event.event_kind == "delete":
            handler(event.identifier)
        elif event.entity is not None:
            handler(event.entity)


class SubscriptionManager:
    """
    Owns the single change feed subscription of the current session.

    Args:
        feed: The change feed to subscribe to.
        handlers: Callbacks for parsed events; replaceable via set_handlers().
        resolve_bookmark: Optional lookup used to re-read bookmark rows on insert and
            update, so the merged entity carries its resolved collection name. Events
            whose row cannot be read are dropped.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        handlers: FeedHandlers | None = None,
        resolve_bookmark: BookmarkResolver | None = None,
    ) -> None:
        self._feed = feed
        self._handlers = handlers or FeedHandlers()
        self._resolve_bookmark = resolve_bookmark
        self._lock = asyncio.Lock()
        self._requested_user_id: str | None = None
        self._user_id: str | None = None
        self._subscription: FeedSubscription | None = None
        # Bumped on every teardown; deliveries from older subscriptions are ignored
        self._generation = 0
        # Background resolve tasks, kept to prevent garbage collection
        self._background_tasks: set[asyncio.Task] = set()

    @property
    def user_id(self) -> str | None:
        """Identity of the open subscription, if any."""
        return self._user_id

    @property
    def is_subscribed(self) -> bool:
        """Whether a subscription is currently open."""
        return self._subscription is not None

    def set_handlers(self, handlers: FeedHandlers) -> None:
        """Replace the event callbacks. The subscription is left untouched."""
        self._handlers = handlers

    async def set_session(self, user_id: str | None) -> bool:
        """
        Follow the current session identity.

        Unchanged identities are a no-op. Otherwise the previous subscription is fully
        torn down before a new one is opened. When identities change in quick
        succession only the latest one ends up subscribed.

        Returns:
            True if a subscription is open for the requested identity afterwards.
        """
        self._requested_user_id = user_id
        async with self._lock:
            target = self._requested_user_id
            if target is not None and target == self._user_id and self.is_subscribed:
                return target == user_id
            await self._teardown()
            if target is None:
                return user_id is None
            try:
                self._subscription = await self._feed.subscribe(
                    target, self._make_callback(self._generation),
                )
            except Exception as e:
                logger.warning(
                    "Could not subscribe to changes for user %s: %s", target, describe_failure(e),
                )
                return False
            self._user_id = target
            logger.info("Subscribed to changes for user %s", target)
            return target == user_id

    async def close(self) -> None:
        """Tear down the subscription and forget the session."""
        self._requested_user_id = None
        async with self._lock:
            await self._teardown()

    def _make_callback(self, generation: int) -> Callable[[Mapping[str, Any]], None]:
        def callback(payload: Mapping[str, Any]) -> None:
            self._on_payload(generation, payload)

        return callback

    def _on_payload(self, generation: int, payload: Mapping[str, Any]) -> None:
        if generation != self._generation:
            logger.debug("Ignoring delivery from a closed subscription")
            return
        event = parse_change_event(payload)
        if event is None:
            return
        if (
            self._resolve_bookmark is not None
            and event.entity_kind == "bookmark"
            and event.event_kind != "delete"
        ):
            task = asyncio.get_running_loop().create_task(
                self._resolve_and_dispatch(generation, event),
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)
            return
        self._dispatch(event)

    async def _resolve_and_dispatch(self, generation: int, event: ChangeEvent) -> None:
        try:
            bookmark = await self._resolve_bookmark(event.identifier)
        except Exception as e:
            logger.warning(
                "Dropping %s event for bookmark %s: %s",
                event.event_kind,
                event.identifier,
                describe_failure(e, entity_type="bookmark"),
            )
            return
        if generation != self._generation:
            return
        if bookmark is None:
            logger.debug("Bookmark %s no longer exists; dropping event", event.identifier)
            return
        self._dispatch(replace(event, entity=bookmark))

    def _dispatch(self, event: ChangeEvent) -> None:
        try:
            self._handlers.dispatch(event)
        except Exception:
            logger.exception(
                "Change handler failed for %s %s %s",
                event.entity_kind,
                event.event_kind,
                event.identifier,
            )

    async def _teardown(self) -> None:
        self._generation += 1
        for task in list(self._background_tasks):
            if not task.done():
                task.cancel()
        self._background_tasks.clear()

        subscription, self._subscription = self._subscription, None
        user_id, self._user_id = self._user_id, None
        if subscription is None:
            return
        try:
            await subscription.unsubscribe()
        except Exception as e:
            logger.warning(
                "Error closing change subscription for user %s: %s", user_id, describe_failure(e),
            )
        logger.info("Unsubscribed from changes for user %s", user_id)
