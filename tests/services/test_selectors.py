"""Tests for the derived views over bookmarks and collections."""
from services.selectors import (
    active_bookmarks,
    archived_bookmarks,
    collection_label,
    group_by_collection,
    library_stats,
    resolve_collection,
    uncategorized_bookmarks,
)


def test__active_and_archived__partition_in_order(make_bookmark) -> None:
    """Archived bookmarks are split out without reordering."""
    bookmarks = [
        make_bookmark("a", minutes=3),
        make_bookmark("b", minutes=2, archived=True),
        make_bookmark("c", minutes=1),
    ]

    assert [b.id for b in active_bookmarks(bookmarks)] == ["a", "c"]
    assert [b.id for b in archived_bookmarks(bookmarks)] == ["b"]


def test__resolve_collection__dangling_reference_is_uncategorized(
    make_bookmark, make_collection,
) -> None:
    """A reference to an unknown collection resolves to None."""
    collections = [make_collection("c1", name="Reading")]

    assert resolve_collection(make_bookmark("a", collection_id="c1"), collections).id == "c1"
    assert resolve_collection(make_bookmark("b", collection_id="gone"), collections) is None
    assert resolve_collection(make_bookmark("c"), collections) is None
    assert collection_label(make_bookmark("a", collection_id="c1"), collections) == "Reading"
    assert collection_label(make_bookmark("b", collection_id="gone"), collections) is None


def test__group_by_collection__includes_empty_collections(
    make_bookmark, make_collection,
) -> None:
    """Every collection gets a group, holding only its active bookmarks."""
    collections = [make_collection("c1"), make_collection("c2", minutes=1)]
    bookmarks = [
        make_bookmark("a", collection_id="c1"),
        make_bookmark("b", collection_id="c1", archived=True),
    ]

    groups = group_by_collection(bookmarks, collections)

    assert [g.collection.id for g in groups] == ["c1", "c2"]
    assert [b.id for b in groups[0].bookmarks] == ["a"]
    assert groups[1].bookmarks == ()


def test__uncategorized_bookmarks__active_without_known_collection(
    make_bookmark, make_collection,
) -> None:
    """Uncategorized covers missing and dangling references, not archived ones."""
    collections = [make_collection("c1")]
    bookmarks = [
        make_bookmark("a"),
        make_bookmark("b", collection_id="gone"),
        make_bookmark("c", collection_id="c1"),
        make_bookmark("d", archived=True),
    ]

    assert [b.id for b in uncategorized_bookmarks(bookmarks, collections)] == ["a", "b"]


def test__library_stats__counts(make_bookmark, make_collection) -> None:
    """Active, archived and collection counts."""
    bookmarks = [make_bookmark("a"), make_bookmark("b", archived=True), make_bookmark("c")]
    collections = [make_collection("c1")]

    stats = library_stats(bookmarks, collections)

    assert (stats.bookmarks, stats.collections, stats.archived) == (2, 1, 1)
