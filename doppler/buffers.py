"""A fixed-size ring buffer that overwrites unread items and reports drops."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, List, Optional, Tuple

AlertFunc = Callable[[int], None]


class RingBuffer:
    """Writers never block; a reader that was lapped skips ahead and alerts."""

    def __init__(self, size: int, alert: Optional[AlertFunc] = None) -> None:
        if size <= 0:
            raise ValueError("buffer size must be positive")
        self._size = size
        self._slots: List[Optional[Tuple[int, Any]]] = [None] * size
        self._write = 0
        self._read = 0
        self._alert = alert
        self._closed = False
        self._cond = threading.Condition()

    def set(self, item: Any) -> None:
        with self._cond:
            self._slots[self._write % self._size] = (self._write, item)
            self._write += 1
            self._cond.notify_all()

    def _pop(self) -> Tuple[bool, Any, int]:
        entry = self._slots[self._read % self._size]
        if entry is None or entry[0] < self._read:
            return False, None, 0
        seq, item = entry
        missed = seq - self._read
        self._read = seq + 1
        return True, item, missed

    def _report(self, missed: int) -> None:
        if missed and self._alert is not None:
            self._alert(missed)

    def try_next(self) -> Optional[Any]:
        """Return the next item, or None if nothing is waiting."""
        with self._cond:
            found, item, missed = self._pop()
        self._report(missed)
        return item if found else None

    def next(self, timeout: Optional[float] = None) -> Optional[Any]:
        """Block for the next item; None on close or timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                found, item, missed = self._pop()
                if found or self._closed:
                    break
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    break
                self._cond.wait(remaining)
        self._report(missed)
        return item if found else None

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()