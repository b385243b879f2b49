"""
Library snapshot task.

Fetches the user's bookmarks and collections through the REST client, loads them into
a reconciliation store and reports what it sees.

Usage:
    python -m tasks.snapshot --token <access token> [--archived]
"""
import argparse
import asyncio
import logging
from dataclasses import dataclass

from core.config import Settings, get_settings
from services.api_client import BookmarkApiClient, RemoteDataService
from services.bookmark_actions import BookmarkActions
from services.reconciliation_store import ReconciliationStore
from services.selectors import (
    LibraryStats,
    archived_bookmarks,
    group_by_collection,
    library_stats,
    uncategorized_bookmarks,
)

logger = logging.getLogger(__name__)


@dataclass
class SnapshotReport:
    """Summary of a loaded library."""

    stats: LibraryStats
    per_collection: dict[str, int]
    uncategorized: int

    def to_dict(self) -> dict[str, object]:
        """Convert to simple dict for logging/return."""
        return {
            "bookmarks": self.stats.bookmarks,
            "collections": self.stats.collections,
            "archived": self.stats.archived,
            "uncategorized": self.uncategorized,
        }


def build_report(store: ReconciliationStore) -> SnapshotReport:
    """Summarize the store's current state."""
    bookmarks = store.bookmarks.get()
    collections = store.collections.get()
    return SnapshotReport(
        stats=library_stats(bookmarks, collections),
        per_collection={
            group.collection.name: len(group.bookmarks)
            for group in group_by_collection(bookmarks, collections)
        },
        uncategorized=len(uncategorized_bookmarks(bookmarks, collections)),
    )


async def take_snapshot(api: RemoteDataService) -> tuple[ReconciliationStore, SnapshotReport | None]:
    """
    Load the library into a fresh store.

    Returns:
        The store and its report, or None as report when loading failed.
    """
    store = ReconciliationStore()
    if not await BookmarkActions(store, api).refresh():
        return store, None
    return store, build_report(store)


async def run_snapshot(
    access_token: str | None,
    settings: Settings | None = None,
    show_archived: bool = False,
) -> SnapshotReport | None:
    """Entry point: fetch, load, and log the library summary."""
    settings = settings or get_settings()
    logger.info("Fetching library from %s", settings.rest_url)
    async with BookmarkApiClient.from_settings(settings, access_token) as api:
        store, report = await take_snapshot(api)
    if report is None:
        logger.error("Could not load the library")
        return None

    logger.info("Library snapshot: %s", report.to_dict())
    for name, count in report.per_collection.items():
        logger.info("  %s: %d", name, count)
    if show_archived:
        for bookmark in archived_bookmarks(store.bookmarks.get()):
            logger.info("  [archived] %s <%s>", bookmark.display_title, bookmark.url)
    return report


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Fetch the bookmark library and print a summary.",
    )
    parser.add_argument("--token", default=None, help="Session access token (default: anon key)")
    parser.add_argument(
        "--archived",
        action="store_true",
        help="Also list archived bookmarks",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    report = asyncio.run(run_snapshot(args.token, settings, show_archived=args.archived))
    raise SystemExit(0 if report is not None else 1)


if __name__ == "__main__":
    main()
