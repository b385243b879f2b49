"""Tests for the in-memory change feed."""
import pytest

from services.change_feed import InMemoryChangeFeed


@pytest.mark.asyncio
async def test__publish__delivers_to_user_subscriptions_only() -> None:
    """Payloads are scoped to the subscribed user."""
    feed = InMemoryChangeFeed()
    received_1: list = []
    received_2: list = []
    await feed.subscribe("user-1", received_1.append)
    await feed.subscribe("user-2", received_2.append)

    delivered = feed.publish("user-1", {"table": "bookmarks"})

    assert delivered == 1
    assert received_1 == [{"table": "bookmarks"}]
    assert received_2 == []


@pytest.mark.asyncio
async def test__publish__no_subscribers() -> None:
    """Publishing for a user without subscriptions delivers nothing."""
    feed = InMemoryChangeFeed()

    assert feed.publish("nobody", {}) == 0
    assert feed.subscription_count() == 0


@pytest.mark.asyncio
async def test__unsubscribe__stops_delivery_and_is_idempotent() -> None:
    """A closed subscription receives nothing and can be closed again."""
    feed = InMemoryChangeFeed()
    received: list = []
    subscription = await feed.subscribe("user-1", received.append)

    await subscription.unsubscribe()
    await subscription.unsubscribe()
    feed.publish("user-1", {"table": "bookmarks"})

    assert subscription.closed is True
    assert received == []
    assert feed.subscription_count("user-1") == 0


@pytest.mark.asyncio
async def test__subscription_count__per_user_and_total() -> None:
    """Counts can be taken for one user or across all users."""
    feed = InMemoryChangeFeed()
    await feed.subscribe("user-1", lambda payload: None)
    await feed.subscribe("user-1", lambda payload: None)
    await feed.subscribe("user-2", lambda payload: None)

    assert feed.subscription_count("user-1") == 2
    assert feed.subscription_count("user-2") == 1
    assert feed.subscription_count() == 3
