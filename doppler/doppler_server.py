"""v1 egress: streams marshalled envelopes to firehose and app subscribers."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Protocol

from .buffers import RingBuffer
from .metrics import Counter, Gauge, MetricClient
from .streams import ContextCancelled, StreamContext
from .v1_router import SubscriptionRequest

log = logging.getLogger(__name__)

_POLL = 0.01


class Registrar(Protocol):
    def register(self, request: SubscriptionRequest, setter: Any) -> Callable[[], None]: ...


class Sender(Protocol):
    context: StreamContext

    def send(self, payload: Any) -> None: ...


class _Batcher:
    """Collects items and writes them once the batch is full or old enough."""

    def __init__(self, size: int, interval: float, write: Callable[[List[Any]], None]) -> None:
        self._size = size
        self._interval = interval
        self._write = write
        self._batch: List[Any] = []
        self._last_flush = time.monotonic()

    def _interval_elapsed(self) -> bool:
        return time.monotonic() - self._last_flush >= self._interval

    def write(self, item: Any) -> None:
        self._batch.append(item)
        if len(self._batch) >= self._size or self._interval_elapsed():
            self.forced_flush()

    def flush(self) -> None:
        """Write the pending batch if the interval has passed."""
        if self._interval_elapsed():
            self.forced_flush()

    def forced_flush(self) -> None:
        batch, self._batch = self._batch, []
        self._last_flush = time.monotonic()
        if batch:
            self._write(batch)


class DopplerServer:
    """Serves v1 subscriptions, one stream or batched stream per request."""

    def __init__(
        self,
        registrar: Registrar,
        metric_client: MetricClient,
        dropped_metric: Counter,
        subscriptions_metric: Gauge,
        batch_interval: float,
        batch_size: int,
        buffer_size: int,
    ) -> None:
        self._registrar = registrar
        self._egress_metric = metric_client.new_counter("egress", version=(2, 0))
        self._dropped_metric = dropped_metric
        self._subscriptions_metric = subscriptions_metric
        self._batch_interval = batch_interval
        self._batch_size = batch_size
        self._buffer_size = buffer_size

    def alert(self, missed: int) -> None:
        """Count envelopes dropped on the way to a subscriber."""
        self._dropped_metric.increment(missed)

    @contextmanager
    def _registered(self, request: SubscriptionRequest) -> Iterator[RingBuffer]:
        def on_drop(missed: int) -> None:
            log.warning(
                "Dropped %d envelopes (v1 buffer) ShardID: %s", missed, request.shard_id
            )
            self.alert(missed)

        self._subscriptions_metric.increment(1.0)
        try:
            buffer = RingBuffer(self._buffer_size, on_drop)
            cleanup = self._registrar.register(request, buffer)
            try:
                yield buffer
            finally:
                cleanup()
                buffer.close()
        finally:
            self._subscriptions_metric.decrement(1.0)

    def subscribe(self, request: SubscriptionRequest, sender: Sender) -> None:
        """Send each envelope on its own until the context is cancelled.

        Raises ContextCancelled when the stream ends, or the sender's error.
        """
        with self._registered(request) as buffer:
            context = sender.context
            while not context.cancelled():
                data = buffer.next(timeout=_POLL)
                if data is None:
                    continue
                sender.send(data)
                self._egress_metric.increment(1)
            raise ContextCancelled()

    def batch_subscribe(self, request: SubscriptionRequest, sender: Sender) -> None:
        """Send envelopes in batches until the context is cancelled.

        Raises ContextCancelled when the stream ends, or the sender's error.
        """
        with self._registered(request) as buffer:

            def write(batch: List[bytes]) -> None:
                sender.send(batch)
                self._egress_metric.increment(len(batch))

            batcher = _Batcher(self._batch_size, self._batch_interval, write)
            context = sender.context
            while not context.cancelled():
                data = buffer.try_next()
                if data is None:
                    batcher.flush()
                    context.wait(_POLL)
                    continue
                batcher.write(data)
            raise ContextCancelled()