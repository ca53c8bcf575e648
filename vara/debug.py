"""Debug tracing, switched on by the VARA_DEBUG environment variable."""

from __future__ import annotations

import inspect
import os
import sys
from datetime import datetime

ENV_VAR = "VARA_DEBUG"
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})


def debug_enabled() -> bool:
    """Return True if VARA_DEBUG holds a true boolean value."""
    return os.environ.get(ENV_VAR, "") in _TRUE_VALUES


def debug_print(message: str, *args: object) -> None:
    """Write a trace line to stderr when debugging is enabled.

    ``message`` is %-formatted with ``args`` when any are given. The line
    carries a timestamp and the caller's file name and line number.
    """
    if not debug_enabled():
        return
    text = message % args if args else message
    frame = inspect.currentframe()
    caller = frame.f_back if frame is not None else None
    location = ""
    if caller is not None:
        location = f"{os.path.basename(caller.f_code.co_filename)}:{caller.f_lineno}: "
    del frame, caller
    stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S.%f")
    print(f"[VARA] {stamp} {location}{text}", file=sys.stderr)