import threading

import pytest

from vara.buffer_count import BufferCount, parse_buffer


def test_new_count_is_zero():
    assert BufferCount().get() == 0


def test_set_then_get():
    count = BufferCount()
    count.set(42)
    assert count.get() == 42


def test_incr_returns_new_value():
    count = BufferCount()
    count.set(10)
    result = count.incr(5)
    assert result == count.get()
    assert result > 10


def test_reset_clears_count():
    count = BufferCount()
    count.set(99)
    count.reset()
    assert count.get() == 0


def test_concurrent_increments_are_not_lost():
    count = BufferCount()
    threads_n, per_thread = 8, 500

    def worker():
        for _ in range(per_thread):
            count.incr(1)

    threads = [threading.Thread(target=worker) for _ in range(threads_n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert count.get() == threads_n * per_thread


@pytest.mark.parametrize("value", [0, 1, 123, 65536])
def test_parse_buffer_round_trip(value):
    assert parse_buffer(f"BUFFER {value}") == value


def test_parse_buffer_without_prefix():
    assert parse_buffer("17") == 17


@pytest.mark.parametrize("line", ["BUFFER", "BUFFER abc", "garbage", "BUFFER 1.5", ""])
def test_parse_buffer_invalid_gives_zero(line):
    assert parse_buffer(line) == 0