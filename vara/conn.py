"""Data connection over an established VARA link."""

from __future__ import annotations

import contextlib
import select
import threading
import time
from typing import Any

from vara.addr import Addr
from vara.buffer_count import parse_buffer
from vara.debug import debug_print
from vara.errors import ModemClosedError, VaraError
from vara.pubsub import Subscription

CONNECTED = "connected"
DISCONNECTED = "disconnected"
CONNECTING = "connecting"

# Writes block while the TX buffer holds this many times the payload being
# written. The on-air frame size and the rate of BUFFER updates are unknown,
# so this is a compromise that keeps both VARA FM and VARA HF busy without
# letting the TX buffer grow so large that closing takes ages.
_MAGIC_NUMBER = 7
_POLL_INTERVAL = 0.05
_DRAIN_CHUNK = 1 << 16


class VaraConn:
    """A stream connection to a remote station, carried over the modem's data port.

    The modem object is expected to provide ``_cmds`` (a PubSub of status
    lines), ``_buffer_count``, ``_data_conn`` (a socket), ``_my_call``,
    ``_closed``, ``_state`` (one of CONNECTED, DISCONNECTED, CONNECTING),
    ``_write_cmd(cmd)`` and ``abort()``.
    """

    buffer_timeout = 60.0
    disconnect_timeout = 60.0
    write_settle = 2.0
    read_grace = 2.0
    drain_timeout = 1.0

    def __init__(self, modem: Any, remote_call: str) -> None:
        self._modem = modem
        self.remote_call = remote_call
        self._last_write: float | None = None
        self._close_lock = threading.Lock()
        self._close_started = False
        self._closing = False
        modem._data_conn.settimeout(None)

    @property
    def closing(self) -> bool:
        return self._closing

    def _connected(self) -> bool:
        return self._modem._state == CONNECTED

    def _next_buffer_update(self, sub: Subscription, deadline: float, what: str) -> int:
        remaining = max(0.0, deadline - time.monotonic())
        try:
            cmd = sub.get(timeout=remaining)
        except TimeoutError:
            raise TimeoutError(f"{what}: buffer timeout") from None
        if cmd is None:
            raise ModemClosedError()
        if cmd == "DISCONNECTED":
            raise BrokenPipeError(f"{what}: disconnected")
        return parse_buffer(cmd)

    def flush(self) -> None:
        """Block until the modem's TX buffer is empty."""
        debug_print("Flushing...")
        with self._modem._cmds.subscribe("DISCONNECTED", "BUFFER") as sub:
            if self._closing:
                return
            deadline = time.monotonic() + self.buffer_timeout
            count = self._modem._buffer_count.get()
            while count > 0:
                count = self._next_buffer_update(sub, deadline, "flush")
                deadline = time.monotonic() + self.buffer_timeout
        debug_print("Flushed")

    def settimeout(self, timeout: float | None) -> None:
        """Set the timeout of blocking socket operations on the data port."""
        self._modem._data_conn.settimeout(timeout)

    def local_addr(self) -> Addr:
        """Address of this station."""
        return Addr(self._modem._my_call)

    def remote_addr(self) -> Addr:
        """Address of the remote station."""
        return Addr(self.remote_call)

    def close(self) -> None:
        """Disconnect the link gracefully; only the first call does anything.

        Raises ModemClosedError if the modem is closed, TimeoutError if the
        modem did not confirm the disconnect in time (the link is then aborted).
        """
        with self._close_lock:
            if self._close_started:
                return
            self._close_started = True
        debug_print("Closing connection...")
        if self._modem._closed:
            raise ModemClosedError()
        try:
            self._disconnect()
        finally:
            self._discard_remaining()

    def _disconnect(self) -> None:
        self._closing = True
        with self._modem._cmds.subscribe("DISCONNECTED") as sub:
            if self._modem._state == DISCONNECTED:
                return
            # Data and commands travel on separate sockets; give the last
            # written data time to reach the modem before DISCONNECT.
            if self._last_write is not None:
                wait = self.write_settle - (time.monotonic() - self._last_write)
                if wait > 0:
                    time.sleep(wait)
            with contextlib.suppress(OSError, VaraError):
                self._modem._write_cmd("DISCONNECT")
            try:
                value = sub.get(timeout=self.disconnect_timeout)
            except TimeoutError:
                debug_print("disconnect timeout - aborting connection")
                with contextlib.suppress(OSError, VaraError):
                    self._modem.abort()
                raise TimeoutError("disconnect timeout - connection aborted") from None
            if value is None:
                raise ModemClosedError()

    def _discard_remaining(self) -> None:
        data_conn = self._modem._data_conn
        deadline = time.monotonic() + self.drain_timeout
        discarded = 0
        try:
            while (remaining := deadline - time.monotonic()) > 0:
                data_conn.settimeout(remaining)
                chunk = data_conn.recv(_DRAIN_CHUNK)
                if not chunk:
                    break
                discarded += len(chunk)
        except OSError:
            pass
        debug_print("close: discarded %d bytes of remaining data", discarded)

    def _readable(self, timeout: float) -> bool:
        readable, _, _ = select.select([self._modem._data_conn], [], [], timeout)
        return bool(readable)

    def read(self, size: int = _DRAIN_CHUNK) -> bytes:
        """Read up to ``size`` bytes; an empty result means the link is closed."""
        with self._modem._cmds.subscribe("DISCONNECTED") as sub:
            if not self._connected():
                debug_print("read: not connected")
                return b""
            while True:
                if self._readable(_POLL_INTERVAL):
                    return self._modem._data_conn.recv(size)
                try:
                    value = sub.get(timeout=0)
                except TimeoutError:
                    continue
                debug_print("read: disconnected while reading")
                if value is None:
                    raise ModemClosedError()
                # Data sent before the disconnect may still be on its way,
                # since data and commands arrive on independent streams.
                if not self._readable(self.read_grace):
                    debug_print("read: timeout waiting for data after disconnect")
                    return b""
                try:
                    data = self._modem._data_conn.recv(size)
                except OSError as exc:
                    debug_print("read: error after disconnect: %s", exc)
                    return b""
                debug_print("read: got data (%d bytes) after disconnect", len(data))
                return data

    def write(self, data: bytes) -> int:
        """Send ``data``, blocking while the modem's TX buffer is too full.

        Returns the number of bytes written. Raises BrokenPipeError when the
        link is not (or no longer) connected.
        """
        with self._modem._cmds.subscribe("DISCONNECTED", "BUFFER") as sub:
            if not self._connected():
                raise BrokenPipeError("not connected")
            limit = _MAGIC_NUMBER * len(data)
            deadline = time.monotonic() + self.buffer_timeout
            count = self._modem._buffer_count.get()
            while count >= limit and not self._closing:
                debug_print("write: buffer full (%d >= %d)", count, limit)
                count = self._next_buffer_update(sub, deadline, "write")
                deadline = time.monotonic() + self.buffer_timeout

            # The modem keeps queueing data after DISCONNECT, so stop feeding
            # it and wait for the disconnect to complete.
            if self._closing and self._connected():
                debug_print("write: waiting for disconnect to complete...")
                for value in sub:
                    if value == "DISCONNECTED":
                        break
                debug_print("write: disconnect complete")
                raise BrokenPipeError("connection closed")

            debug_print("write: sending %d bytes", len(data))
            self._modem._buffer_count.incr(len(data))
            self._last_write = time.monotonic()
            self._modem._data_conn.sendall(data)
            return len(data)

    def tx_buffer_len(self) -> int:
        """Bytes queued in the modem's TX buffer or in transit to it."""
        return self._modem._buffer_count.get()

    def __enter__(self) -> VaraConn:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()