"""Stream contexts and stream errors."""

from __future__ import annotations

import threading
from typing import Optional


class ContextCancelled(Exception):
    """Raised or returned when a stream's context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class UnimplementedError(Exception):
    """An endpoint that is deliberately not implemented."""


class EndOfStream(Exception):
    """The peer closed the stream."""


class StreamContext:
    """Cancellation signal shared by a stream's producer and consumer."""

    def __init__(self) -> None:
        self._done = threading.Event()

    def cancel(self) -> None:
        self._done.set()

    def cancelled(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or timeout; return whether cancelled."""
        return self._done.wait(timeout)

    def error(self) -> Optional[ContextCancelled]:
        return ContextCancelled() if self._done.is_set() else None