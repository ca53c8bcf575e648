"""Accepting inbound connections from the modem."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from vara.addr import Addr
from vara.debug import debug_print
from vara.errors import ListenerClosedError, ModemClosedError


class _InboundConns:
    """Hands inbound connections to callers blocked in accept.

    An offer only succeeds while someone is waiting to take it.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._items: deque[Any] = deque()
        self._waiting = 0
        self._closed = False

    def offer(self, conn: Any) -> bool:
        """Pass ``conn`` to a waiting taker; False if nobody is waiting."""
        with self._cond:
            if self._closed or self._waiting <= len(self._items):
                return False
            self._items.append(conn)
            self._cond.notify_all()
            return True

    def take(self, stop: threading.Event, timeout: float | None = None) -> Any:
        """Wait for a connection until ``stop`` is set or the queue is closed."""
        with self._cond:
            self._waiting += 1
            try:
                ready = self._cond.wait_for(
                    lambda: self._items or self._closed or stop.is_set(), timeout
                )
                if not ready:
                    raise TimeoutError("no inbound connection")
                if self._items:
                    return self._items.popleft()
                if self._closed:
                    raise ModemClosedError()
                raise ListenerClosedError()
            finally:
                self._waiting -= 1

    def wake(self) -> None:
        """Let waiting takers re-check their stop events."""
        with self._cond:
            self._cond.notify_all()

    def close(self) -> None:
        """Refuse further offers; waiting takers get ModemClosedError."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class Listener:
    """Accepts connections that remote stations open to this station.

    The modem object is expected to provide ``_inbound`` (an inbound
    connection queue), ``_my_call`` and ``_write_cmd(cmd)``.
    """

    def __init__(self, modem: Any) -> None:
        self._modem = modem
        self._done = threading.Event()
        self._close_lock = threading.Lock()
        self._close_called = False

    def accept(self, timeout: float | None = None) -> Any:
        """Wait for and return the next inbound connection.

        Raises ListenerClosedError after close, ModemClosedError when the
        modem goes away, and TimeoutError if ``timeout`` seconds pass.
        """
        conn = self._modem._inbound.take(self._done, timeout)
        debug_print("Accept() got: %s", conn)
        return conn

    def addr(self) -> Addr:
        """Address this listener accepts connections on."""
        return Addr(self._modem._my_call)

    def close(self) -> None:
        """Stop listening; blocked accept calls are released. Only the first call acts."""
        with self._close_lock:
            if self._close_called:
                return
            self._close_called = True
        self._modem._write_cmd("LISTEN OFF")
        self._done.set()
        self._modem._inbound.wake()

    def __enter__(self) -> Listener:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()