"""Pytest fixtures for testing."""
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from schemas.bookmark import Bookmark
from schemas.collection import Collection
from services.notifications import Notification, Notifier
from services.reconciliation_store import ReconciliationStore

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_bookmark() -> Callable[..., Bookmark]:
    """Factory for bookmarks; `minutes` offsets created_at from a fixed base time."""

    def _make(bookmark_id: str, minutes: int = 0, **fields: Any) -> Bookmark:
        data: dict[str, Any] = {
            "id": bookmark_id,
            "url": f"https://example.com/{bookmark_id}",
            "title": f"Bookmark {bookmark_id}",
            "created_at": BASE_TIME + timedelta(minutes=minutes),
        }
        data.update(fields)
        return Bookmark(**data)

    return _make


@pytest.fixture
def make_collection() -> Callable[..., Collection]:
    """Factory for collections; `minutes` offsets created_at from a fixed base time."""

    def _make(collection_id: str, minutes: int = 0, **fields: Any) -> Collection:
        data: dict[str, Any] = {
            "id": collection_id,
            "name": f"Collection {collection_id}",
            "created_at": BASE_TIME + timedelta(minutes=minutes),
        }
        data.update(fields)
        return Collection(**data)

    return _make


@pytest.fixture
def notifier() -> Notifier:
    """Notifier shared by the store under test."""
    return Notifier()


@pytest.fixture
def notifications(notifier: Notifier) -> list[Notification]:
    """Every notification published during the test."""
    received: list[Notification] = []
    notifier.subscribe(received.append)
    return received


@pytest.fixture
def store(notifier: Notifier) -> ReconciliationStore:
    """Empty reconciliation store."""
    return ReconciliationStore(notifier)


def bookmark_row(bookmark_id: str, **fields: Any) -> dict[str, Any]:
    """A bookmark row as returned by the REST API."""
    row: dict[str, Any] = {
        "id": bookmark_id,
        "user_id": "user-1",
        "collection_id": None,
        "title": None,
        "url": "https://example.com",
        "is_archived": False,
        "created_at": "2025-01-01T12:00:00+00:00",
        "collections": None,
    }
    row.update(fields)
    return row


def collection_row(collection_id: str, **fields: Any) -> dict[str, Any]:
    """A collection row as returned by the REST API."""
    row: dict[str, Any] = {
        "id": collection_id,
        "user_id": "user-1",
        "name": "Reading",
        "created_at": "2025-01-01T12:00:00+00:00",
    }
    row.update(fields)
    return row
