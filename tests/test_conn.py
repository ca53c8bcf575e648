import select
import socket
import threading
import time
from contextlib import contextmanager

import pytest

from vara.addr import Addr
from vara.buffer_count import BufferCount
from vara.conn import CONNECTED, DISCONNECTED, VaraConn
from vara.errors import ModemClosedError
from vara.pubsub import PubSub


class FakeModem:
    def __init__(self, data_conn):
        self._my_call = "N0CALL"
        self._cmds = PubSub()
        self._buffer_count = BufferCount()
        self._data_conn = data_conn
        self._closed = False
        self._state = CONNECTED
        self.sent = []
        self.aborted = False

    def _write_cmd(self, cmd):
        if self._closed:
            raise ModemClosedError()
        self.sent.append(cmd)

    def abort(self):
        self.aborted = True
        self._state = DISCONNECTED


@contextmanager
def publishing(modem, value, interval=0.02):
    stop = threading.Event()

    def run():
        while not stop.is_set():
            modem._cmds.publish(value)
            stop.wait(interval)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    try:
        yield
    finally:
        stop.set()
        thread.join(2)


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def pair():
    local, peer = socket.socketpair()
    yield local, peer
    local.close()
    peer.close()


@pytest.fixture
def modem(pair):
    return FakeModem(pair[0])


@pytest.fixture
def conn(modem):
    c = VaraConn(modem, "LA1B")
    c.buffer_timeout = 1.0
    c.disconnect_timeout = 1.0
    c.write_settle = 0.0
    c.read_grace = 0.2
    c.drain_timeout = 0.1
    return c


def test_addresses(conn):
    assert conn.local_addr() == Addr("N0CALL")
    assert conn.remote_addr() == Addr("LA1B")
    assert str(conn.remote_addr()) == "LA1B"


def test_write_sends_data_and_counts_buffer(conn, pair):
    assert conn.write(b"hello") == 5
    assert pair[1].recv(100) == b"hello"
    assert conn.tx_buffer_len() == len(b"hello")


def test_write_not_connected(conn, modem):
    modem._state = DISCONNECTED
    with pytest.raises(BrokenPipeError):
        conn.write(b"data")


def test_write_waits_for_buffer_space(conn, modem, pair):
    modem._buffer_count.set(100)
    with publishing(modem, "BUFFER 0"):
        assert conn.write(b"abc") == 3
    assert pair[1].recv(100) == b"abc"


def test_write_buffer_timeout(conn, modem):
    conn.buffer_timeout = 0.1
    modem._buffer_count.set(100)
    with pytest.raises(TimeoutError):
        conn.write(b"abc")


def test_write_disconnected_while_waiting(conn, modem):
    modem._buffer_count.set(100)
    with publishing(modem, "DISCONNECTED"):
        with pytest.raises(BrokenPipeError):
            conn.write(b"abc")


def test_write_modem_closed_while_waiting(conn, modem):
    modem._buffer_count.set(100)
    modem._cmds.close()
    with pytest.raises(ModemClosedError):
        conn.write(b"abc")


def test_write_during_close_waits_for_disconnect(conn, modem):
    closer = threading.Thread(target=conn.close, daemon=True)
    closer.start()
    assert wait_until(lambda: "DISCONNECT" in modem.sent)
    with publishing(modem, "DISCONNECTED"):
        with pytest.raises(BrokenPipeError):
            conn.write(b"late")
        closer.join(2)
    assert not closer.is_alive()


def test_read_returns_data(conn, pair):
    pair[1].sendall(b"payload")
    assert conn.read(100) == b"payload"


def test_read_not_connected_is_eof(conn, modem, pair):
    modem._state = DISCONNECTED
    pair[1].sendall(b"ignored")
    assert conn.read(100) == b""


def test_read_disconnect_without_data_is_eof(conn, modem):
    with publishing(modem, "DISCONNECTED"):
        assert conn.read(100) == b""


def test_read_gets_data_sent_around_disconnect(conn, modem, pair):
    with publishing(modem, "DISCONNECTED"):
        pair[1].sendall(b"tail")
        assert conn.read(100) == b"tail"


def test_read_modem_closed(conn, modem):
    modem._cmds.close()
    with pytest.raises(ModemClosedError):
        conn.read(100)


def test_flush_waits_for_empty_buffer(conn, modem):
    conn.buffer_timeout = 5.0
    modem._buffer_count.set(50)
    start = time.monotonic()
    with publishing(modem, "BUFFER 0"):
        conn.flush()
    assert time.monotonic() - start < conn.buffer_timeout


def test_flush_timeout(conn, modem):
    conn.buffer_timeout = 0.1
    modem._buffer_count.set(50)
    with pytest.raises(TimeoutError, match="flush"):
        conn.flush()


def test_flush_disconnected(conn, modem):
    modem._buffer_count.set(50)
    with publishing(modem, "DISCONNECTED"):
        with pytest.raises(BrokenPipeError):
            conn.flush()


def test_flush_modem_closed(conn, modem):
    modem._buffer_count.set(50)
    modem._cmds.close()
    with pytest.raises(ModemClosedError):
        conn.flush()


def test_close_sends_disconnect_once(conn, modem):
    with publishing(modem, "DISCONNECTED"):
        conn.close()
        conn.close()
    assert modem.sent == ["DISCONNECT"]
    assert conn.closing


def test_close_already_disconnected_discards_data(conn, modem, pair):
    modem._state = DISCONNECTED
    pair[1].sendall(b"leftover")
    conn.close()
    assert modem.sent == []
    assert conn.closing is True
    readable, _, _ = select.select([pair[0]], [], [], 0)
    assert readable == []
    assert conn.read(100) == b""


def test_close_timeout_aborts(conn, modem):
    conn.disconnect_timeout = 0.1
    with pytest.raises(TimeoutError):
        conn.close()
    assert modem.aborted
    assert modem.sent == ["DISCONNECT"]


def test_close_modem_closed(conn, modem):
    modem._closed = True
    with pytest.raises(ModemClosedError):
        conn.close()
    assert modem.sent == []


def test_close_pubsub_closed(conn, modem):
    modem._cmds.close()
    with pytest.raises(ModemClosedError):
        conn.close()


def test_settimeout_applies_to_data_socket(conn, pair):
    conn.settimeout(3.0)
    assert pair[0].gettimeout() == 3.0
    assert conn.write(b"abc") == 3
    assert pair[1].recv(100) == b"abc"


def test_context_manager_closes(conn, modem):
    with publishing(modem, "DISCONNECTED"):
        with conn as entered:
            assert entered is conn
    assert modem.sent == ["DISCONNECT"]