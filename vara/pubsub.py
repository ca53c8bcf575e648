"""A small publish/subscribe hub for modem status lines."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterator

_CAPACITY = 1


class Subscription:
    """A stream of published values that start with one of the given prefixes.

    With no prefixes every value is wanted. The publisher waits while the
    subscription already holds an unread value, unless it is cancelled.
    """

    def __init__(self, *prefixes: str) -> None:
        self.prefixes = tuple(prefixes)
        self._items: deque[str] = deque()
        self._cond = threading.Condition()
        self._cancelled = False
        self._closed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def closed(self) -> bool:
        return self._closed

    def wants(self, value: str) -> bool:
        """Return True if ``value`` matches this subscription's prefixes."""
        if not self.prefixes:
            return True
        return any(value.startswith(prefix) for prefix in self.prefixes)

    def get(self, timeout: float | None = None) -> str | None:
        """Return the next value, or None once the publisher has closed.

        Raises TimeoutError if nothing arrives within ``timeout`` seconds.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout):
                raise TimeoutError("no value received")
            if self._items:
                value = self._items.popleft()
                self._cond.notify_all()
                return value
            return None

    def cancel(self) -> None:
        """Stop receiving values; a waiting publisher is released."""
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[str]:
        while (value := self.get()) is not None:
            yield value

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: object) -> None:
        self.cancel()

    def _deliver(self, value: str) -> bool:
        """Queue ``value``, waiting for room; False if the subscription was cancelled."""
        with self._cond:
            self._cond.wait_for(
                lambda: len(self._items) < _CAPACITY or self._cancelled or self._closed
            )
            if self._cancelled:
                return False
            if not self._closed:
                self._items.append(value)
                self._cond.notify_all()
            return True

    def _close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class PubSub:
    """Fans published strings out to matching subscriptions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._subscribers: list[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, value: str) -> None:
        """Hand ``value`` to every subscription that wants it.

        Blocks until each such subscription has room for it or is cancelled.
        Raises RuntimeError once the hub is closed.
        """
        with self._publish_lock:
            with self._lock:
                if self._closed:
                    raise RuntimeError("publish on closed PubSub")
                subscribers = list(self._subscribers)
            dropped = [s for s in subscribers if s.wants(value) and not s._deliver(value)]
            if dropped:
                with self._lock:
                    self._subscribers = [s for s in self._subscribers if s not in dropped]

    def subscribe(self, *args: str) -> Subscription:
        """Subscribe to values starting with any of ``args`` (all values if none)."""
        subscription = Subscription(*args)
        with self._lock:
            if self._closed:
                subscription._close()
            else:
                self._subscribers.append(subscription)
        return subscription

    def close(self) -> None:
        """Close the hub; every subscription sees the end of its stream."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers, self._subscribers = self._subscribers, []
        for subscription in subscribers:
            subscription._close()