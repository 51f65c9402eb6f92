"""Connects a blocking reader to a writer."""

from __future__ import annotations

import threading
from typing import Any, Callable


class Repeater:
    def __init__(self, writer: Callable[[Any], None], reader: Callable[[], Any]) -> None:
        self._writer = writer
        self._reader = reader
        self._done = threading.Event()

    def start(self) -> None:
        """Pass each value from the reader to the writer until stopped."""
        while not self._done.is_set():
            self._writer(self._reader())

    def stop(self) -> None:
        self._done.set()