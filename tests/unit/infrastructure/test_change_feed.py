"""Tests for ChangeFeed."""

import asyncio

import pytest

from pulsechat.domain.entities import ChangeEvent, ChangeType
from pulsechat.infrastructure.change_feed import ChangeFeed


def _event(*keys: str) -> ChangeEvent:
    return ChangeEvent(type=ChangeType.MESSAGE_SENT, keys=frozenset(keys))


class TestSubscribe:
    """Subscription lifecycle."""

    def test_subscribe_and_close(self) -> None:
        feed = ChangeFeed()

        subscription = feed.subscribe(["messages:c1"])
        assert feed.subscriber_count == 1

        subscription.close()
        assert feed.subscriber_count == 0

    def test_watch_closes_on_exit(self) -> None:
        feed = ChangeFeed()

        with feed.watch(["presence"]):
            assert feed.subscriber_count == 1

        assert feed.subscriber_count == 0

    def test_close_twice_is_harmless(self) -> None:
        feed = ChangeFeed()
        subscription = feed.subscribe(["presence"])

        subscription.close()
        subscription.close()

        assert feed.subscriber_count == 0


class TestPublish:
    """Publishing invalidations."""

    def test_only_matching_subscriptions_notified(self) -> None:
        feed = ChangeFeed()
        with (
            feed.watch(["messages:c1"]) as interested,
            feed.watch(["messages:c2"]) as other,
        ):
            notified = feed.publish(_event("messages:c1", "conversations:u1"))

            assert notified == 1
            assert interested.pending == {"messages:c1"}
            assert other.pending == frozenset()

    def test_repeated_invalidations_coalesce(self) -> None:
        feed = ChangeFeed()
        with feed.watch(["messages:c1", "typing:c1"]) as subscription:
            feed.publish(_event("messages:c1"))
            feed.publish(_event("messages:c1"))
            feed.publish(_event("typing:c1"))

            assert subscription.drain() == {"messages:c1", "typing:c1"}
            assert subscription.drain() == frozenset()

    def test_closed_subscription_not_notified(self) -> None:
        feed = ChangeFeed()
        subscription = feed.subscribe(["presence"])
        subscription.close()

        assert feed.publish(_event("presence")) == 0
        assert subscription.pending == frozenset()


class TestWait:
    """Waiting for invalidations."""

    async def test_wait_returns_pending_immediately(self) -> None:
        feed = ChangeFeed()
        with feed.watch(["presence"]) as subscription:
            feed.publish(_event("presence"))

            assert await subscription.wait(timeout=0.01) == {"presence"}

    async def test_wait_wakes_on_publish(self) -> None:
        feed = ChangeFeed()
        with feed.watch(["users"]) as subscription:
            waiter = asyncio.create_task(subscription.wait(timeout=1.0))
            await asyncio.sleep(0)

            feed.publish(_event("users"))

            assert await waiter == {"users"}

    @pytest.mark.parametrize("timeout", [0.01, 0.05])
    async def test_wait_times_out_empty(self, timeout: float) -> None:
        feed = ChangeFeed()
        with feed.watch(["users"]) as subscription:
            assert await subscription.wait(timeout=timeout) == frozenset()
