"""
User-facing bookmark and collection actions.

Each action applies its effect to the store immediately, calls the remote data
service, and returns a MutationResult once the call has been confirmed or rolled back.
"""
import asyncio
import logging
from datetime import UTC, datetime

from schemas.bookmark import Bookmark, derive_title, normalize_bookmark_url
from schemas.collection import Collection, normalize_collection_name
from services.api_client import RemoteDataService
from services.reconciliation_store import MutationResult, ReconciliationStore, StoreState
from services.temp_ids import new_temp_id
from shared.api_errors import describe_failure

logger = logging.getLogger(__name__)


def _update_bookmark(state: StoreState, bookmark_id: str, **changes: object) -> StoreState:
    return state.with_entities(
        "bookmark",
        (b.model_copy(update=changes) if b.id == bookmark_id else b for b in state.bookmarks),
    )


def _remove(state: StoreState, kind: str, identifier: str) -> StoreState:
    return state.with_entities(kind, (e for e in state.entities(kind) if e.id != identifier))


class BookmarkActions:
    """Optimistic actions over a ReconciliationStore and a RemoteDataService."""

    def __init__(self, store: ReconciliationStore, api: RemoteDataService) -> None:
        self.store = store
        self.api = api

    def _rejected(self, failure_message: str, error: ValueError) -> MutationResult:
        """Invalid input: nothing is applied and nothing is sent."""
        self.store.notifier.error(failure_message, str(error))
        return MutationResult(ok=False, error=str(error))

    def _collection_name(self, collection_id: str | None) -> str | None:
        if collection_id is None:
            return None
        collection = self.store.get_collection(collection_id)
        return collection.name if collection else None

    async def refresh(self) -> bool:
        """
        Reload both sets from the backend.

        This is the recovery path for change events missed while disconnected.

        Returns:
            True if the store was reloaded.
        """
        try:
            bookmarks, collections = await asyncio.gather(
                self.api.list_bookmarks(), self.api.list_collections(),
            )
        except Exception as e:
            cause = describe_failure(e)
            logger.warning("Failed to load bookmarks: %s", cause)
            self.store.notifier.error("Failed to load bookmarks", cause)
            return False
        self.store.load(bookmarks, collections)
        return True

    # ------------------------------------------------------------ bookmarks

    async def add_bookmark(
        self, url: str, title: str = "", collection_id: str | None = None,
    ) -> MutationResult:
        """Save a new bookmark; shown at once under a temporary id."""
        try:
            url = normalize_bookmark_url(url)
        except ValueError as e:
            return self._rejected("Failed to save bookmark", e)

        temp_id = new_temp_id()
        placeholder = Bookmark(
            id=temp_id,
            url=url,
            title=derive_title(url, title),
            collection_id=collection_id,
            collection_name=self._collection_name(collection_id),
            created_at=datetime.now(UTC),
        )
        return await self.store.apply_optimistic_mutation(
            lambda state: state.with_entities("bookmark", (placeholder, *state.bookmarks)),
            lambda: self.api.create_bookmark(url, title, collection_id),
            failure_message="Failed to save bookmark",
            temp_id=temp_id,
            entity_type="bookmark",
        )

    async def edit_bookmark(self, bookmark_id: str, url: str, title: str) -> MutationResult:
        """Change a bookmark's URL and title."""
        try:
            url = normalize_bookmark_url(url)
        except ValueError as e:
            return self._rejected("Failed to update bookmark", e)

        return await self.store.apply_optimistic_mutation(
            lambda state: _update_bookmark(
                state, bookmark_id, url=url, title=derive_title(url, title),
            ),
            lambda: self.api.update_bookmark(bookmark_id, url, title),
            failure_message="Failed to update bookmark",
            entity_type="bookmark",
        )

    async def delete_bookmark(self, bookmark_id: str) -> MutationResult:
        """Delete a bookmark."""
        return await self.store.apply_optimistic_mutation(
            lambda state: _remove(state, "bookmark", bookmark_id),
            lambda: self.api.delete_bookmark(bookmark_id),
            failure_message="Failed to delete bookmark",
            confirmed_deletes=[("bookmark", bookmark_id)],
            entity_type="bookmark",
        )

    async def set_archived(self, bookmark_id: str, archived: bool) -> MutationResult:
        """Archive or unarchive a bookmark."""
        return await self.store.apply_optimistic_mutation(
            lambda state: _update_bookmark(state, bookmark_id, archived=archived),
            lambda: self.api.archive_bookmark(bookmark_id, archived),
            failure_message="Failed to archive bookmark",
            entity_type="bookmark",
        )

    async def toggle_archive(self, bookmark_id: str) -> MutationResult:
        """Flip a bookmark's archived flag based on its current local value."""
        bookmark = self.store.get_bookmark(bookmark_id)
        if bookmark is None:
            return MutationResult(ok=False, error="Bookmark not found")
        return await self.set_archived(bookmark_id, not bookmark.archived)

    async def set_collection(
        self, bookmark_id: str, collection_id: str | None,
    ) -> MutationResult:
        """Move a bookmark into a collection, or out of any with None."""
        collection_name = self._collection_name(collection_id)
        return await self.store.apply_optimistic_mutation(
            lambda state: _update_bookmark(
                state,
                bookmark_id,
                collection_id=collection_id,
                collection_name=collection_name,
            ),
            lambda: self.api.set_bookmark_collection(bookmark_id, collection_id),
            failure_message="Failed to update collection",
            entity_type="bookmark",
        )

    # ----------------------------------------------------------- collections

    async def add_collection(self, name: str) -> MutationResult:
        """Create a collection; shown at once under a temporary id."""
        try:
            name = normalize_collection_name(name)
        except ValueError as e:
            return self._rejected("Failed to create collection", e)

        temp_id = new_temp_id()
        placeholder = Collection(id=temp_id, name=name, created_at=datetime.now(UTC))
        return await self.store.apply_optimistic_mutation(
            lambda state: state.with_entities("collection", (*state.collections, placeholder)),
            lambda: self.api.create_collection(name),
            failure_message="Failed to create collection",
            temp_id=temp_id,
            entity_type="collection",
        )

    async def delete_collection(self, collection_id: str) -> MutationResult:
        """Delete a collection and detach its bookmarks."""

        def update(state: StoreState) -> StoreState:
            state = _remove(state, "collection", collection_id)
            return state.with_entities(
                "bookmark",
                (b.detached() if b.collection_id == collection_id else b for b in state.bookmarks),
            )

        return await self.store.apply_optimistic_mutation(
            update,
            lambda: self.api.delete_collection(collection_id),
            failure_message="Failed to delete collection",
            confirmed_deletes=[("collection", collection_id)],
            entity_type="collection",
        )
