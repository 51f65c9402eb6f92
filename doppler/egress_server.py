"""v2 egress: streams batches of v2 envelopes to subscribers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Protocol

from .buffers import RingBuffer
from .doppler_server import _Batcher
from .envelopes import V2Envelope
from .metrics import Counter, Gauge, MetricClient
from .pubsub import EgressBatchRequest
from .streams import ContextCancelled, StreamContext, UnimplementedError

log = logging.getLogger(__name__)

_BUFFER_SIZE = 1000
_RESET = 0.25
_POLL = 0.01


class Subscriber(Protocol):
    def subscribe(self, request: EgressBatchRequest, setter: Any) -> Callable[[], None]: ...


class BatchSender(Protocol):
    context: StreamContext

    def send(self, batch: List[V2Envelope]) -> None: ...


class EgressServer:
    """Serves batched v2 subscriptions."""

    def __init__(
        self,
        subscriber: Subscriber,
        metric_client: MetricClient,
        dropped_metric: Counter,
        subscriptions_metric: Gauge,
        batch_interval: float,
        batch_size: int,
    ) -> None:
        self._subscriber = subscriber
        self._egress_metric = metric_client.new_counter("egress", version=(2, 0))
        self._dropped_metric = dropped_metric
        self._subscriptions_metric = subscriptions_metric
        self._batch_interval = batch_interval
        self._batch_size = batch_size

    def alert(self, missed: int) -> None:
        """Count envelopes dropped on the way to a subscriber."""
        self._dropped_metric.increment(missed)

    def receiver(self, request: Any, sender: Any) -> None:
        raise UnimplementedError("use BatchedReceiver instead")

    def batched_receiver(self, request: EgressBatchRequest, sender: BatchSender) -> None:
        """Stream batches until the context is cancelled or sending fails.

        Raises ContextCancelled when the stream ends, or the sender's error.
        """

        def on_drop(missed: int) -> None:
            log.warning(
                "Dropped %d envelopes (v2 buffer) ShardID: %s", missed, request.shard_id
            )
            self.alert(missed)

        self._subscriptions_metric.increment(1.0)
        try:
            buffer = RingBuffer(_BUFFER_SIZE, on_drop)
            unsubscribe = self._subscriber.subscribe(request, buffer)
            try:
                self._pump(buffer, sender)
            finally:
                unsubscribe()
                buffer.close()
        finally:
            self._subscriptions_metric.decrement(1.0)

    def _pump(self, buffer: RingBuffer, sender: BatchSender) -> None:
        def write(batch: List[V2Envelope]) -> None:
            sender.send(batch)
            self._egress_metric.increment(len(batch))

        batcher = _Batcher(self._batch_size, self._batch_interval, write)
        context = sender.context
        deadline = time.monotonic() + _RESET
        while True:
            if context.cancelled():
                raise ContextCancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                batcher.forced_flush()
                deadline = time.monotonic() + _RESET
                continue
            envelope = buffer.next(timeout=min(remaining, _POLL))
            if envelope is not None:
                batcher.write(envelope)
                deadline = time.monotonic() + _RESET