"""
Client-side reconciliation of bookmarks and collections.

The store holds two ordered, identifier-keyed entity sets:

- bookmarks, newest first by creation
- collections, in creation order

and keeps them consistent with two sources of change that race with each other:

1. Optimistic local mutations. The change is visible immediately, the remote call runs
   afterwards, and the change is either confirmed (merged with whatever the state has
   become in the meantime) or rolled back.
2. External change notifications (insert/update/delete) from the change feed, which are
   delivered at least once and in no particular order.

Merge policy:
- Identifiers are unique in each set after every operation.
- Updates to the same identifier are last-writer-wins by arrival order.
- Deletes are terminal. A deleted identifier is tombstoned and no later insert, update,
  confirmation or rollback brings it back.
- Deleting a collection clears the reference on every bookmark that points to it.

Rollback only touches the identifiers the failed mutation changed, and only while it is
still the latest local write to them. Such an identifier falls back to the newest write
still in flight, or else to its last settled value (the result of the latest successful
write or external event). Later successful mutations and external events are preserved.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace

from schemas.bookmark import Bookmark
from schemas.change_event import ChangeEvent, Entity, EntityKind, entity_kind_of
from schemas.collection import Collection
from services.notifications import Notifier
from services.observable import ObservableValue, ObservableView
from services.temp_ids import is_temp_id
from shared.api_errors import describe_failure

logger = logging.getLogger(__name__)

ENTITY_KINDS: tuple[EntityKind, ...] = ("bookmark", "collection")


@dataclass(frozen=True)
class StoreState:
    """Immutable snapshot of both entity sets."""

    bookmarks: tuple[Bookmark, ...] = ()
    collections: tuple[Collection, ...] = ()

    def entities(self, kind: EntityKind) -> tuple[Entity, ...]:
        """Return the entity set for a kind."""
        return self.bookmarks if kind == "bookmark" else self.collections

    def with_entities(self, kind: EntityKind, entities: Iterable[Entity]) -> "StoreState":
        """Return a copy with the entity set for a kind replaced."""
        if kind == "bookmark":
            return replace(self, bookmarks=tuple(entities))
        return replace(self, collections=tuple(entities))

    def get(self, kind: EntityKind, identifier: str) -> Entity | None:
        """Find an entity by identifier."""
        for entity in self.entities(kind):
            if entity.id == identifier:
                return entity
        return None


@dataclass(frozen=True)
class MutationResult:
    """Completion signal of an optimistic mutation."""

    ok: bool
    entity: Entity | None = None
    error: str | None = None


@dataclass(frozen=True)
class _Change:
    """Value of one identifier before and after an optimistic update."""

    kind: EntityKind
    identifier: str
    before: Entity | None
    after: Entity | None


@dataclass
class _Tombstones:
    bookmark: set[str] = field(default_factory=set)
    collection: set[str] = field(default_factory=set)

    def of(self, kind: EntityKind) -> set[str]:
        return self.bookmark if kind == "bookmark" else self.collection


@dataclass
class _History:
    """
    Optimistic writes still in flight for one identifier, oldest first.

    `settled` is the value to fall back to once none of them is left: the value before
    the first write, or the result of the latest write that succeeded.
    """

    settled: Entity | None
    pending: list[tuple[object, Entity | None]] = field(default_factory=list)

    def position(self, token: object) -> int | None:
        for index, (owner, _) in enumerate(self.pending):
            if owner is token:
                return index
        return None


def _index_of(entities: list[Entity], identifier: str | None) -> int | None:
    if identifier is None:
        return None
    for index, entity in enumerate(entities):
        if entity.id == identifier:
            return index
    return None


def _ordered_position(entities: list[Entity], entity: Entity, kind: EntityKind) -> int:
    """Index at which `entity` belongs by creation time."""
    for index, existing in enumerate(entities):
        if kind == "bookmark" and existing.created_at < entity.created_at:
            return index
        if kind == "collection" and existing.created_at > entity.created_at:
            return index
    return len(entities)


def _add(entities: list[Entity], entity: Entity, kind: EntityKind) -> None:
    """New bookmarks go first, new collections go last."""
    if kind == "bookmark":
        entities.insert(0, entity)
    else:
        entities.append(entity)


def _diff(before: StoreState, after: StoreState) -> list[_Change]:
    changes = []
    for kind in ENTITY_KINDS:
        before_by_id = {e.id: e for e in before.entities(kind)}
        after_by_id = {e.id: e for e in after.entities(kind)}
        # Keep a stable order: ids from the old state first, then new ones
        identifiers = list(before_by_id) + [i for i in after_by_id if i not in before_by_id]
        for identifier in identifiers:
            old, new = before_by_id.get(identifier), after_by_id.get(identifier)
            if old != new:
                changes.append(_Change(kind, identifier, old, new))
    return changes


class ReconciliationStore:
    """
    Local, optimistically mutated view of the user's bookmarks and collections.

    The sets are only changed through the store's own operations. Read them through
    the `bookmarks` and `collections` observables.
    """

    def __init__(self, notifier: Notifier | None = None) -> None:
        self.notifier = notifier or Notifier()
        self._state = StoreState()
        self._tombstones = _Tombstones()
        self._history: dict[tuple[EntityKind, str], _History] = {}
        self._bookmarks: ObservableValue[tuple[Bookmark, ...]] = ObservableValue(())
        self._collections: ObservableValue[tuple[Collection, ...]] = ObservableValue(())

    # ------------------------------------------------------------------ reads

    @property
    def state(self) -> StoreState:
        """Current snapshot of both sets."""
        return self._state

    @property
    def bookmarks(self) -> ObservableView[tuple[Bookmark, ...]]:
        """Observable bookmark set, newest first."""
        return self._bookmarks.readonly()

    @property
    def collections(self) -> ObservableView[tuple[Collection, ...]]:
        """Observable collection set, in creation order."""
        return self._collections.readonly()

    def get_bookmark(self, bookmark_id: str) -> Bookmark | None:
        """Find a bookmark by id."""
        return self._state.get("bookmark", bookmark_id)

    def get_collection(self, collection_id: str) -> Collection | None:
        """Find a collection by id."""
        return self._state.get("collection", collection_id)

    def is_deleted(self, kind: EntityKind, identifier: str) -> bool:
        """Whether a delete has been observed for this identifier."""
        return identifier in self._tombstones.of(kind)

    # -------------------------------------------------------- full state load

    def load(self, bookmarks: Iterable[Bookmark], collections: Iterable[Collection]) -> None:
        """
        Replace both sets with a full fetch from the backend.

        Pending temporary entities survive the reload so their confirmation can still
        find them. Duplicate ids keep their first occurrence and deleted ids are dropped.
        """
        loaded = {"bookmark": list(bookmarks), "collection": list(collections)}
        state = self._state
        for kind in ENTITY_KINDS:
            seen: set[str] = set()
            entities: list[Entity] = []
            pending = [e for e in state.entities(kind) if is_temp_id(e.id)]
            for entity in loaded[kind]:
                if entity.id in seen or self.is_deleted(kind, entity.id):
                    continue
                seen.add(entity.id)
                entities.append(self._sanitize(entity))
            entities.sort(key=lambda e: e.created_at, reverse=kind == "bookmark")
            if kind == "bookmark":
                entities = pending + entities
            else:
                entities = entities + pending
            state = state.with_entities(kind, entities)
        logger.debug(
            "Loaded %d bookmarks and %d collections",
            len(state.bookmarks),
            len(state.collections),
        )
        # The fetched rows supersede local writes to permanent ids
        self._history = {
            key: history for key, history in self._history.items() if is_temp_id(key[1])
        }
        self._commit(state)

    def reset(self) -> None:
        """Forget all entities and tombstones (end of session)."""
        self._tombstones = _Tombstones()
        self._history = {}
        self._commit(StoreState())

    # ------------------------------------------------------ optimistic writes

    async def apply_optimistic_mutation(
        self,
        update: Callable[[StoreState], StoreState],
        remote: Callable[[], Awaitable[Entity | None]],
        *,
        failure_message: str,
        temp_id: str | None = None,
        confirmed_deletes: Iterable[tuple[EntityKind, str]] = (),
        entity_type: str = "",
    ) -> MutationResult:
        """
        Apply a local change now and reconcile it with the remote result later.

        Args:
            update: Computes the next state from the current one. Applied synchronously,
                before the remote call is issued.
            remote: The remote operation. Returns the confirmed entity, or None for
                operations without a result.
            failure_message: Message shown to the user when the remote call fails.
            temp_id: Temporary id of the placeholder the confirmed entity replaces.
            confirmed_deletes: (kind, id) pairs the remote call deletes for good.
            entity_type: Entity name used in error descriptions.

        Returns:
            MutationResult; remote failures are reported here and never raised.
        """
        before = self._state
        changes = _diff(before, self._commit(update(before)))
        token = object()
        for change in changes:
            key = (change.kind, change.identifier)
            if key not in self._history:
                self._history[key] = _History(settled=change.before)
            self._history[key].pending.append((token, change.after))
        try:
            confirmed = await remote()
        except asyncio.CancelledError:
            self._revert(token, changes)
            raise
        except Exception as e:
            cause = describe_failure(e, entity_type=entity_type)
            logger.warning("%s: %s", failure_message, cause)
            self._revert(token, changes)
            self.notifier.error(failure_message, cause)
            return MutationResult(ok=False, error=cause)

        if not isinstance(confirmed, Bookmark | Collection):
            confirmed = None
        self._settle(token, changes)
        self._confirm(confirmed, temp_id, confirmed_deletes)
        return MutationResult(ok=True, entity=confirmed)

    def _settle(self, token: object, changes: list[_Change]) -> None:
        """Record a successful write. Earlier writes to the same ids can no longer win."""
        for change in changes:
            key = (change.kind, change.identifier)
            history = self._history.get(key)
            position = history.position(token) if history else None
            if position is None:
                continue
            history.settled = change.after
            del history.pending[: position + 1]
            if not history.pending:
                del self._history[key]

    def _confirm(
        self,
        confirmed: Entity | None,
        temp_id: str | None,
        confirmed_deletes: Iterable[tuple[EntityKind, str]],
    ) -> None:
        state = self._state
        if temp_id is not None:
            for kind in ENTITY_KINDS:
                self._history.pop((kind, temp_id), None)
        if confirmed is None:
            if temp_id is not None:
                for kind in ENTITY_KINDS:
                    state = self._without(state, kind, temp_id)
        else:
            kind = entity_kind_of(confirmed)
            entities = list(state.entities(kind))
            temp_index = _index_of(entities, temp_id)
            later = self._history.get((kind, confirmed.id))
            if self.is_deleted(kind, confirmed.id):
                logger.debug("Dropping confirmation for deleted %s %s", kind, confirmed.id)
                if temp_index is not None:
                    del entities[temp_index]
            elif later is not None:
                # A later local write is still in flight and stays visible
                later.settled = self._sanitize(confirmed)
                if temp_index is not None:
                    del entities[temp_index]
            else:
                confirmed = self._sanitize(confirmed)
                existing_index = _index_of(entities, confirmed.id)
                if existing_index is not None:
                    entities[existing_index] = confirmed
                    if temp_index is not None:
                        del entities[temp_index]
                elif temp_index is not None:
                    entities[temp_index] = confirmed
                else:
                    _add(entities, confirmed, kind)
            state = state.with_entities(kind, entities)

        for kind, identifier in confirmed_deletes:
            state = self._delete(state, kind, identifier)
        self._commit(state)

    def _revert(self, token: object, changes: list[_Change]) -> None:
        state = self._state
        reverted = 0
        for change in changes:
            kind, identifier = change.kind, change.identifier
            key = (kind, identifier)
            history = self._history.get(key)
            position = history.position(token) if history else None
            if position is None:
                # Settled by a later write or overwritten by an external event
                continue
            latest = position == len(history.pending) - 1
            del history.pending[position]
            if not latest:
                continue
            if history.pending:
                target = history.pending[-1][1]
            else:
                target = history.settled
                del self._history[key]
            if target is not None and self.is_deleted(kind, identifier):
                continue
            state = self._put(state, kind, identifier, target)
            reverted += 1
        logger.debug("Rolled back %d of %d changed entities", reverted, len(changes))
        self._commit(state)

    def _put(
        self, state: StoreState, kind: EntityKind, identifier: str, entity: Entity | None,
    ) -> StoreState:
        """Set the value of one identifier, restoring removed entities at their position."""
        entities = list(state.entities(kind))
        index = _index_of(entities, identifier)
        if entity is None:
            if index is None:
                return state
            del entities[index]
        else:
            entity = self._sanitize(entity)
            if index is None:
                entities.insert(_ordered_position(entities, entity, kind), entity)
            else:
                entities[index] = entity
        return state.with_entities(kind, entities)

    # --------------------------------------------------------- external merge

    def merge_external_insert(self, entity: Entity) -> bool:
        """
        Merge an insert notification.

        Existing entities win: a duplicate notification, or one for an entity already
        confirmed locally, is ignored. Deleted ids are not resurrected.

        Returns:
            True if the entity was added.
        """
        kind = entity_kind_of(entity)
        if self.is_deleted(kind, entity.id) or self._state.get(kind, entity.id) is not None:
            logger.debug("Ignoring insert for existing or deleted %s %s", kind, entity.id)
            return False
        entities = list(self._state.entities(kind))
        _add(entities, self._sanitize(entity), kind)
        self._history.pop((kind, entity.id), None)
        self._commit(self._state.with_entities(kind, entities))
        return True

    def merge_external_update(self, entity: Entity) -> bool:
        """
        Merge an update notification, replacing the entity in place.

        Returns:
            True if an entity was replaced; False when the id is unknown or deleted.
        """
        kind = entity_kind_of(entity)
        entities = list(self._state.entities(kind))
        index = _index_of(entities, entity.id)
        if index is None or self.is_deleted(kind, entity.id):
            logger.debug("Ignoring update for missing or deleted %s %s", kind, entity.id)
            return False
        entities[index] = self._sanitize(entity)
        self._history.pop((kind, entity.id), None)
        self._commit(self._state.with_entities(kind, entities))
        return True

    def merge_external_delete(self, kind: EntityKind, identifier: str) -> bool:
        """
        Merge a delete notification.

        The id is tombstoned even when it is not present. Deleting a collection detaches
        every bookmark that references it in the same state transition.

        Returns:
            True if an entity was removed.
        """
        present = self._state.get(kind, identifier) is not None
        self._commit(self._delete(self._state, kind, identifier))
        return present

    def apply_change_event(self, event: ChangeEvent) -> bool:
        """Route a parsed change event to the matching merge operation."""
        if event.event_kind == "delete":
            return self.merge_external_delete(event.entity_kind, event.identifier)
        if event.entity is None:
            return False
        if event.event_kind == "insert":
            return self.merge_external_insert(event.entity)
        return self.merge_external_update(event.entity)

    # ---------------------------------------------------------------- helpers

    def _delete(self, state: StoreState, kind: EntityKind, identifier: str) -> StoreState:
        self._tombstones.of(kind).add(identifier)
        self._history.pop((kind, identifier), None)
        state = self._without(state, kind, identifier)
        if kind == "collection":
            state = state.with_entities(
                "bookmark",
                (
                    b.detached() if b.collection_id == identifier else b
                    for b in state.bookmarks
                ),
            )
        return state

    @staticmethod
    def _without(state: StoreState, kind: EntityKind, identifier: str) -> StoreState:
        entities = state.entities(kind)
        if all(e.id != identifier for e in entities):
            return state
        return state.with_entities(kind, (e for e in entities if e.id != identifier))

    def _sanitize(self, entity: Entity) -> Entity:
        """Clear bookmark references to collections that are known to be deleted."""
        if isinstance(entity, Bookmark) and entity.collection_id is not None:
            if self.is_deleted("collection", entity.collection_id):
                return entity.detached()
        return entity

    def _commit(self, state: StoreState) -> StoreState:
        self._state = state
        self._bookmarks.set(state.bookmarks)
        self._collections.set(state.collections)
        return state
