"""v2 ingress: accepts v2 envelopes and feeds both buffers."""

from __future__ import annotations

from typing import Iterable

from .buffers import RingBuffer
from .conversion import to_v1
from .envelopes import V2Envelope
from .metrics import Counter
from .streams import UnimplementedError

_SEND_UNIMPLEMENTED = "this endpoint is not yet implemented"


class IngressServer:
    def __init__(self, v1_buf: RingBuffer, v2_buf: RingBuffer, ingress_metric: Counter) -> None:
        self._v1_buf = v1_buf
        self._v2_buf = v2_buf
        self._ingress_metric = ingress_metric

    def send(self, batch: Iterable[V2Envelope]) -> None:
        """Unary sends are refused; clients must stream."""
        error = UnimplementedError(_SEND_UNIMPLEMENTED)
        raise error

    def batch_sender(self, stream) -> None:
        """Ingest batches until stream.recv() raises; the error propagates."""
        while True:
            for envelope in stream.recv():
                self._ingest(envelope)

    def sender(self, stream) -> None:
        """Ingest single envelopes until stream.recv() raises; the error propagates."""
        while True:
            self._ingest(stream.recv())

    def _ingest(self, envelope: V2Envelope) -> None:
        self._v2_buf.set(envelope)
        for v1e in to_v1(envelope):
            if v1e is None or v1e.event_type is None:
                continue
            self._v1_buf.set(v1e)
            self._ingress_metric.increment(1)