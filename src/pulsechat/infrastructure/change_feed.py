"""ChangeFeed implementation with per-subscriber key coalescing."""

import asyncio
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from pulsechat.domain.entities.event import ChangeEvent
from pulsechat.domain.ids import new_id


class Subscription:
    """A subscriber's interest in a set of read-keys.

    Invalidations of the same key arriving before the subscriber drains them
    are coalesced into one.
    """

    def __init__(self, feed: "ChangeFeed", keys: Iterable[str]) -> None:
        self.id = new_id()
        self.keys = frozenset(keys)
        self._feed = feed
        self._pending: set[str] = set()
        self._ready = asyncio.Event()

    @property
    def pending(self) -> frozenset[str]:
        """Return the invalidated keys not yet drained."""
        return frozenset(self._pending)

    def _notify(self, keys: frozenset[str]) -> bool:
        matched = self.keys & keys
        if not matched:
            return False
        self._pending |= matched
        self._ready.set()
        return True

    def drain(self) -> frozenset[str]:
        """Return and clear the pending invalidated keys."""
        keys = frozenset(self._pending)
        self._pending.clear()
        self._ready.clear()
        return keys

    async def wait(self, timeout: float | None = None) -> frozenset[str]:
        """Wait until at least one watched key is invalidated.

        Args:
            timeout: Maximum seconds to wait. None waits indefinitely.

        Returns:
            The invalidated keys, or an empty set if the timeout elapsed.
        """
        if not self._pending:
            try:
                async with asyncio.timeout(timeout):
                    await self._ready.wait()
            except TimeoutError:
                return frozenset()
        return self.drain()

    def close(self) -> None:
        """Stop receiving invalidations."""
        self._feed.unsubscribe(self)


class ChangeFeed:
    """In-process publish/observe bus keyed by logical read-keys.

    Writers publish a ChangeEvent after their transaction commits; every
    subscription watching one of the event's keys is woken. Any transport
    (long poll, server push, sockets) can be built on top of subscriptions.
    """

    def __init__(self) -> None:
        """Initialize the change feed."""
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def subscriber_count(self) -> int:
        """Return the number of open subscriptions."""
        return len(self._subscriptions)

    def subscribe(self, keys: Iterable[str]) -> Subscription:
        """Open a subscription on the given read-keys.

        Args:
            keys: Read-keys to watch.

        Returns:
            The open subscription. Close it with Subscription.close().
        """
        subscription = Subscription(self, keys)
        self._subscriptions[subscription.id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    @contextmanager
    def watch(self, keys: Iterable[str]) -> Iterator[Subscription]:
        """Open a subscription for the duration of a with-block."""
        subscription = self.subscribe(keys)
        try:
            yield subscription
        finally:
            subscription.close()

    def publish(self, event: ChangeEvent) -> int:
        """Notify every subscription watching one of the event's keys.

        Args:
            event: The committed change.

        Returns:
            Number of subscriptions notified.
        """
        notified = 0
        for subscription in list(self._subscriptions.values()):
            if subscription._notify(event.keys):
                notified += 1
        return notified
