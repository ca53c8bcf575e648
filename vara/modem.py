"""Client for the VARA modem program's command and data TCP ports."""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import select
import socket
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from vara.buffer_count import BufferCount, parse_buffer
from vara.conn import CONNECTED, CONNECTING, DISCONNECTED, VaraConn
from vara.debug import debug_print
from vara.errors import ModemClosedError, UnsupportedSchemeError, VaraError
from vara.listener import Listener, _InboundConns
from vara.pubsub import PubSub
from vara.url import DialURL, parse_url

logger = logging.getLogger(__name__)

_BANDWIDTHS = ("500", "2300", "2750")
_READ_SIZE = 1 << 16
_IGNORED_CMDS = frozenset(
    {
        "OK",
        "WRONG",
        "IAMALIVE",
        "PENDING",
        "CANCELPENDING",
        "LINK UNREGISTERED",
        "LINK REGISTERED",
        "ENCRYPTION DISABLED",
        "ENCRYPTION READY",
        "UNENCRYPTED LINK",
        "ENCRYPTED LINK",
    }
)

BusyFunc = Callable[[threading.Event], bool]
"""Called while dialing on a busy channel.

It receives an event that is set once the channel clears and returns True
to abort the dial or False to go ahead.
"""


def bandwidths() -> list[str]:
    """Bandwidths the modem accepts, as strings."""
    return list(_BANDWIDTHS)


@dataclass
class ModemConfig:
    """Where to reach the VARA modem program.

    Empty or zero values fall back to the defaults.
    """

    host: str = "localhost"
    cmd_port: int = 8300
    data_port: int = 8301


_DEFAULT_CONFIG = ModemConfig()


def _with_defaults(config: ModemConfig) -> ModemConfig:
    changes = {
        f.name: getattr(_DEFAULT_CONFIG, f.name)
        for f in dataclasses.fields(config)
        if not getattr(config, f.name)
    }
    return dataclasses.replace(config, **changes)


class PTTController(Protocol):
    """Something that keys a transmitter, such as a rig control link."""

    def set_ptt(self, on: bool) -> None:
        """Key (True) or unkey (False) the transmitter."""


class Modem:
    """A session with a VARA HF or VARA FM modem program.

    Connects to the command and data ports on creation and keeps reading
    status lines from the modem in a background thread.
    """

    # VARA sends IAMALIVE every 60 seconds; silence for longer than this
    # means the modem is gone.
    alive_timeout = 120.0
    cmd_write_timeout = 5.0
    disconnect_poll = 0.05
    busy_poll = 0.3

    def __init__(
        self, scheme: str, my_call: str, config: ModemConfig | None = None
    ) -> None:
        self.scheme = scheme
        self._my_call = my_call
        self.config = _with_defaults(config or ModemConfig())
        self._bandwidth = ""
        self._busy = False
        self._busy_func: BusyFunc | None = None
        self._cmds = PubSub()
        self._inbound = _InboundConns()
        self._state = DISCONNECTED
        self._rig: PTTController | None = None
        self._buffer_count = BufferCount()
        self._closed = False
        self._close_lock = threading.Lock()
        self._close_started = False
        self._write_lock = threading.Lock()
        self._cmd_conn: socket.socket | None = None
        self._data_conn: socket.socket | None = None
        self._start()

    @property
    def my_call(self) -> str:
        return self._my_call

    def _connect_tcp(self, name: str, port: int) -> socket.socket:
        debug_print("Connecting %s", name)
        try:
            return socket.create_connection((self.config.host, port))
        except OSError as exc:
            raise ConnectionError(
                f"couldn't connect to VARA {name} port: {exc}"
            ) from exc

    def _start(self) -> None:
        try:
            self._cmd_conn = self._connect_tcp("command", self.config.cmd_port)
            self._cmd_conn.settimeout(self.cmd_write_timeout)
            self._data_conn = self._connect_tcp("data", self.config.data_port)
            self._write_cmd("PUBLIC ON")
            if self.scheme == "varahf":
                self._write_cmd("CWID ON")
            self._write_cmd("COMPRESSION TEXT")
            self._write_cmd(f"MYCALL {self._my_call}")
            self._write_cmd("LISTEN OFF")
        except Exception:
            for sock in (self._data_conn, self._cmd_conn):
                if sock is not None:
                    sock.close()
            raise
        threading.Thread(
            target=self._cmd_listen, name="vara-cmd-listener", daemon=True
        ).start()

    def set_busy_func(self, fn: BusyFunc | None) -> None:
        """Set the function consulted when dialing on a busy channel."""
        self._busy_func = fn

    def set_bandwidth(self, bandwidth: str) -> None:
        """Set the default bandwidth for outbound and inbound connections."""
        self._set_bandwidth(bandwidth)
        # Remembered so it can be restored after a dial URL overrides it.
        self._bandwidth = bandwidth

    def _set_bandwidth(self, bandwidth: str) -> None:
        if not bandwidth:
            return
        if bandwidth not in _BANDWIDTHS:
            raise ValueError(f"bandwidth {bandwidth} not supported")
        self._write_cmd("BW" + bandwidth)

    def idle(self) -> bool:
        """True if the modem is neither connecting nor connected."""
        return self._state == DISCONNECTED

    def close(self) -> None:
        """Close the link and the TCP connections to the modem. Only the first call acts."""
        with self._close_lock:
            if self._close_started:
                return
            self._close_started = True
        self._closed = True
        try:
            if self._state != DISCONNECTED:
                # No further commands can be sent, so the link is simply
                # declared gone.
                self._cmds.publish("DISCONNECTED")
                self._handle_disconnected()
            self._send_ptt(False)
        finally:
            self._cmds.close()
            self._inbound.close()
            for sock in (self._data_conn, self._cmd_conn):
                if sock is None:
                    continue
                with contextlib.suppress(OSError):
                    sock.shutdown(socket.SHUT_RDWR)
                sock.close()

    def ping(self) -> bool:
        """True while the modem is open."""
        return not self._closed

    def version(self) -> str:
        """Ask the modem for its version string."""
        with self._cmds.subscribe("VERSION", "WRONG") as sub:
            self._write_cmd("VERSION")
            reply = sub.get()
        if reply is None:
            raise ModemClosedError()
        if reply == "WRONG":
            raise VaraError("VERSION not implemented")
        return reply.removeprefix("VERSION ")

    def listen(self) -> Listener:
        """Start accepting inbound connections."""
        if self._closed:
            raise ModemClosedError()
        self._write_cmd("LISTEN ON")
        return Listener(self)

    def dial_url(
        self, url: DialURL | str, cancel: threading.Event | None = None
    ) -> VaraConn:
        """Connect to the station named by ``url``.

        Setting ``cancel`` while dialing asks the modem to disconnect; the
        dial then raises InterruptedError unless the link came up anyway.
        Raises TimeoutError if the remote station did not answer.
        """
        if isinstance(url, str):
            url = parse_url(url)
        if url.scheme != self.scheme:
            raise UnsupportedSchemeError()
        if self._closed:
            raise ModemClosedError()
        if self._state != DISCONNECTED:
            raise VaraError("modem busy")

        # Temporary bandwidth; restored when the link disconnects.
        self._set_bandwidth(url.param("bw"))

        if self.scheme == "varahf":
            if url.param("p2p") == "true":
                self._write_cmd("P2P SESSION")
            else:
                self._write_cmd("WINLINK SESSION")

        if self._busy_func is not None and self._wait_if_busy(self._busy_func):
            raise VaraError("aborted while waiting for clear channel")

        self._state = CONNECTING
        done = threading.Event()
        with self._cmds.subscribe("CONNECTED", "DISCONNECTED") as sub:
            self._write_cmd(f"CONNECT {self._my_call} {url.target}")
            if cancel is not None:
                threading.Thread(
                    target=self._watch_cancel, args=(cancel, done), daemon=True
                ).start()
            try:
                reply = sub.get()
            finally:
                done.set()
        if reply is None:
            raise ModemClosedError()
        if reply.startswith("CONNECTED"):
            return VaraConn(self, url.target)
        if cancel is not None and cancel.is_set():
            raise InterruptedError("dial cancelled")
        raise TimeoutError("connect timeout")

    def _watch_cancel(self, cancel: threading.Event, done: threading.Event) -> None:
        while not done.is_set():
            if cancel.wait(self.disconnect_poll):
                debug_print("context cancellation - sending disconnect command...")
                with contextlib.suppress(OSError, VaraError):
                    self._write_cmd("DISCONNECT")
                return
        debug_print("dial completed - context cancellation no longer possible")

    def _wait_if_busy(self, busy_func: BusyFunc) -> bool:
        if not self.busy():
            return False
        clear = threading.Event()

        def watch() -> None:
            while self.busy() and not clear.wait(self.busy_poll):
                pass
            clear.set()

        threading.Thread(target=watch, daemon=True).start()
        try:
            return bool(busy_func(clear))
        finally:
            clear.set()

    def disconnect(self) -> None:
        """Close any active link gracefully, blocking until it is down."""
        with self._cmds.subscribe("DISCONNECTED") as sub:
            if self._state == DISCONNECTED:
                return
            self._write_cmd("DISCONNECT")
            sub.get()

    def abort(self) -> None:
        """Drop the link immediately."""
        error: Exception | None = None
        try:
            self._write_cmd("ABORT")
        except (OSError, VaraError) as exc:
            error = exc
        # VARA sends no DISCONNECTED after ABORT while already disconnecting.
        if not self._cmds.closed:
            with contextlib.suppress(RuntimeError):
                self._cmds.publish("DISCONNECTED")
        self._handle_disconnected()
        if error is not None:
            raise error

    def busy(self) -> bool:
        """True if the channel is not clear."""
        return self._busy

    def set_ptt(self, ptt: PTTController | None) -> None:
        """Set the transmitter the modem keys; None ignores PTT requests."""
        self._rig = ptt

    def _write_cmd(self, cmd: str) -> None:
        debug_print("writing cmd: %s", cmd)
        if self._closed or self._cmd_conn is None:
            raise ModemClosedError()
        try:
            with self._write_lock:
                self._cmd_conn.sendall((cmd + "\r").encode("latin-1"))
        except OSError as exc:
            self._closed = True
            debug_print("writeCmd err: %s", exc)
            raise ModemClosedError(f"writing command failed: {exc}") from exc

    def _cmd_listen(self) -> None:
        sock = self._cmd_conn
        try:
            while not self._closed:
                try:
                    readable, _, _ = select.select([sock], [], [], self.alive_timeout)
                    if not readable:
                        raise TimeoutError("modem stopped sending")
                    data = sock.recv(_READ_SIZE)
                    if not data:
                        raise ConnectionResetError("command connection closed")
                except (OSError, ValueError) as exc:
                    if self._state != DISCONNECTED:
                        logger.warning("VARA modem disconnected unexpectedly!")
                    debug_print("cmdListen err: %s", exc)
                    sock.close()
                    return
                for line in data.decode("latin-1").split("\r"):
                    if not line:
                        continue
                    self._handle_cmd(line)
                    try:
                        self._cmds.publish(line)
                    except RuntimeError:
                        return
        finally:
            self.close()

    def _handle_cmd(self, cmd: str) -> None:
        debug_print("got cmd: %s", cmd)
        match cmd:
            case "PTT ON":
                self._send_ptt(True)
            case "PTT OFF":
                self._send_ptt(False)
            case "BUSY ON":
                self._busy = True
            case "BUSY OFF":
                self._busy = False
            case "DISCONNECTED":
                self._handle_disconnected()
            case _ if cmd in _IGNORED_CMDS:
                pass
            case _ if cmd.startswith("BUFFER "):
                self._buffer_count.set(parse_buffer(cmd))
            case _ if cmd.startswith("CONNECTED "):
                self._handle_connected(cmd)
            case _ if cmd.startswith("REGISTERED"):
                parts = cmd.split(" ")
                if len(parts) > 1:
                    logger.info("VARA full speed available, registered to %s", parts[1])
            case _ if cmd.startswith("VERSION"):
                pass
            case _:
                debug_print("got a vara command I wasn't expecting: %r", cmd)

    def _send_ptt(self, on: bool) -> None:
        if self._rig is not None:
            with contextlib.suppress(Exception):
                self._rig.set_ptt(on)

    def _handle_disconnected(self) -> None:
        self._state = DISCONNECTED
        self._buffer_count.reset()
        with contextlib.suppress(OSError, VaraError, ValueError):
            self._set_bandwidth(self._bandwidth)

    def _handle_connected(self, cmd: str) -> None:
        self._state = CONNECTED
        parts = cmd.split(" ")
        if len(parts) < 3:
            raise ValueError(f"unexpected CONNECTED command: {cmd!r}")
        src, dst = parts[1], parts[2]
        if src == self._my_call:
            return  # an outbound dial; dial_url picks it up
        if dst == self._my_call:
            if not self._inbound.offer(VaraConn(self, src)):
                debug_print(
                    "no one is calling accept() at this time. dropping connection from %s",
                    src,
                )
                with contextlib.suppress(OSError, VaraError):
                    self._write_cmd("DISCONNECT")
            return
        raise ValueError(f"unhandled CONNECTED cmd: {cmd!r}")

    def __enter__(self) -> Modem:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()