"""Derived, read-only views over the store's entity sets."""
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from schemas.bookmark import Bookmark
from schemas.collection import Collection


@dataclass(frozen=True)
class LibraryStats:
    """Counts shown on the profile page."""

    bookmarks: int
    collections: int
    archived: int


@dataclass(frozen=True)
class CollectionGroup:
    """A collection with its active bookmarks."""

    collection: Collection
    bookmarks: tuple[Bookmark, ...]


def active_bookmarks(bookmarks: Iterable[Bookmark]) -> list[Bookmark]:
    """Bookmarks that are not archived, in store order."""
    return [b for b in bookmarks if not b.archived]


def archived_bookmarks(bookmarks: Iterable[Bookmark]) -> list[Bookmark]:
    """Archived bookmarks, in store order."""
    return [b for b in bookmarks if b.archived]


def resolve_collection(
    bookmark: Bookmark, collections: Sequence[Collection],
) -> Collection | None:
    """
    Return the collection a bookmark belongs to.

    A reference to a collection that is not in the local set (deleted, or not yet
    observed) resolves to None, which is displayed as uncategorized.
    """
    if bookmark.collection_id is None:
        return None
    for collection in collections:
        if collection.id == bookmark.collection_id:
            return collection
    return None


def collection_label(bookmark: Bookmark, collections: Sequence[Collection]) -> str | None:
    """Name to display for a bookmark's collection, or None when uncategorized."""
    collection = resolve_collection(bookmark, collections)
    return collection.name if collection else None


def group_by_collection(
    bookmarks: Iterable[Bookmark], collections: Sequence[Collection],
) -> list[CollectionGroup]:
    """Active bookmarks per collection, in collection order. Empty collections included."""
    active = active_bookmarks(bookmarks)
    return [
        CollectionGroup(
            collection=collection,
            bookmarks=tuple(b for b in active if b.collection_id == collection.id),
        )
        for collection in collections
    ]


def uncategorized_bookmarks(
    bookmarks: Iterable[Bookmark], collections: Sequence[Collection],
) -> list[Bookmark]:
    """Active bookmarks without a collection, including dangling references."""
    return [
        b for b in active_bookmarks(bookmarks) if resolve_collection(b, collections) is None
    ]


def library_stats(
    bookmarks: Sequence[Bookmark], collections: Sequence[Collection],
) -> LibraryStats:
    """Count active bookmarks, collections and archived bookmarks."""
    archived = len(archived_bookmarks(bookmarks))
    return LibraryStats(
        bookmarks=len(bookmarks) - archived,
        collections=len(collections),
        archived=archived,
    )
