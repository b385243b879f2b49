"""Tests for the library snapshot task."""
import logging
from unittest.mock import AsyncMock

import httpx
import pytest
import respx
from httpx import Response

from conftest import bookmark_row, collection_row
from core.config import Settings
from tasks.snapshot import build_report, run_snapshot, take_snapshot


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at a mocked backend."""
    return Settings(_env_file=None, SUPABASE_URL="http://localhost:54321", SUPABASE_ANON_KEY="k")


def test__build_report__summarizes_store(store, make_bookmark, make_collection) -> None:
    """Test counts per collection and uncategorized bookmarks."""
    store.load(
        [
            make_bookmark("a", minutes=3, collection_id="c1"),
            make_bookmark("b", minutes=2),
            make_bookmark("c", minutes=1, archived=True),
        ],
        [make_collection("c1", name="Reading"), make_collection("c2", minutes=1, name="Work")],
    )

    report = build_report(store)

    assert report.per_collection == {"Reading": 1, "Work": 0}
    assert report.uncategorized == 1
    assert report.to_dict() == {
        "bookmarks": 2,
        "collections": 2,
        "archived": 1,
        "uncategorized": 1,
    }


@pytest.mark.asyncio
async def test__take_snapshot__loads_store(make_bookmark, make_collection) -> None:
    """Test that a snapshot loads both sets into a fresh store."""
    api = AsyncMock()
    api.list_bookmarks.return_value = [make_bookmark("a")]
    api.list_collections.return_value = [make_collection("c1")]

    store, report = await take_snapshot(api)

    assert [b.id for b in store.bookmarks.get()] == ["a"]
    assert report.stats.collections == 1


@pytest.mark.asyncio
async def test__take_snapshot__failure_returns_no_report() -> None:
    """Test that a failed fetch yields no report."""
    api = AsyncMock()
    api.list_bookmarks.side_effect = httpx.ConnectError("offline")
    api.list_collections.return_value = []

    store, report = await take_snapshot(api)

    assert report is None
    assert store.bookmarks.get() == ()


@pytest.mark.asyncio
async def test__run_snapshot__fetches_over_http(settings: Settings, caplog) -> None:
    """Test the end-to-end task against a mocked REST API."""
    with respx.mock(base_url=settings.rest_url) as mock_api:
        mock_api.get("/bookmarks").mock(return_value=Response(200, json=[
            bookmark_row("b1", collection_id="c1", collections={"name": "Reading"}),
            bookmark_row("b2", title="Old", is_archived=True),
        ]))
        mock_api.get("/collections").mock(return_value=Response(200, json=[
            collection_row("c1", name="Reading"),
        ]))

        with caplog.at_level(logging.INFO):
            report = await run_snapshot("token", settings, show_archived=True)

    assert report.stats.bookmarks == 1
    assert report.stats.archived == 1
    assert report.per_collection == {"Reading": 1}
    assert "[archived] Old" in caplog.text


@pytest.mark.asyncio
async def test__run_snapshot__failure_returns_none(settings: Settings, caplog) -> None:
    """Test that a backend error is logged and reported as None."""
    with respx.mock(base_url=settings.rest_url, assert_all_called=False) as mock_api:
        mock_api.get("/bookmarks").mock(return_value=Response(401, json={}))
        mock_api.get("/collections").mock(return_value=Response(200, json=[]))

        with caplog.at_level(logging.ERROR):
            report = await run_snapshot(None, settings)

    assert report is None
    assert "Could not load the library" in caplog.text
