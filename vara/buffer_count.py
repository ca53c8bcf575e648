"""Thread-safe tracking of the modem's TX buffer size."""

from __future__ import annotations

import re
import threading

_BUFFER_PREFIX = "BUFFER "
_INTEGER = re.compile(r"[+-]?[0-9]+")


class BufferCount:
    """A counter of bytes queued for transmission, safe to share between threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._n = 0

    def reset(self) -> None:
        """Set the count back to zero."""
        with self._lock:
            self._n = 0

    def set(self, n: int) -> None:
        """Replace the count."""
        with self._lock:
            self._n = n

    def get(self) -> int:
        """Return the current count."""
        with self._lock:
            return self._n

    def incr(self, n: int) -> int:
        """Add ``n`` to the count and return the new value."""
        with self._lock:
            self._n += n
            return self._n


def parse_buffer(s: str) -> int:
    """Parse a ``BUFFER <n>`` status line; anything unparsable yields 0."""
    if s.startswith(_BUFFER_PREFIX):
        s = s[len(_BUFFER_PREFIX):]
    if not _INTEGER.fullmatch(s):
        return 0
    return int(s)