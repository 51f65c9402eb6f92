"""Helpers for starting child processes and waiting for their ports."""

from __future__ import annotations

import re
import time
from typing import Callable, Union

RED = 31
GREEN = 32
BLUE = 34
CYAN = 36
COLOR_FMT = "\x1b[%dm[%s]\x1b[%dm[%s]\x1b[0m "


def color(oe: str, proc: str, oe_color: int, proc_color: int, no_color: bool = False) -> str:
    """Build a coloured output prefix for a child process."""
    if no_color:
        oe_color = proc_color = 0
    return COLOR_FMT % (oe_color, oe, proc_color, proc)


def wait_for_port_binding(
    prefix: str,
    read: Callable[[], Union[str, bytes]],
    attempts: int = 10,
    interval: float = 1.0,
) -> int:
    """Poll read() until it reports '<prefix> bound to: host:port'."""
    pattern = re.compile(r"%s bound to: .*:(\d+)" % prefix)
    for _ in range(attempts):
        data = read()
        if isinstance(data, bytes):
            data = data.decode("utf-8", "replace")
        match = pattern.search(data)
        if match:
            return int(match.group(1))
        time.sleep(interval)
    raise TimeoutError(f"timed out waiting for port binding, prefix: {prefix}")