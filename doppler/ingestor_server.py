"""v1 ingestion: accepts marshalled v1 envelopes and feeds both buffers."""

from __future__ import annotations

import logging
import time

from .buffers import RingBuffer
from .conversion import to_v2
from .envelopes import Envelope
from .metrics import Counter
from .streams import EndOfStream

log = logging.getLogger(__name__)


class IngestorServer:
    def __init__(self, v1_buf: RingBuffer, v2_buf: RingBuffer, ingress_metric: Counter) -> None:
        self._v1_buf = v1_buf
        self._v2_buf = v2_buf
        self._ingress_metric = ingress_metric

    def pusher(self, stream) -> None:
        """Read payloads until the stream ends; raise if its context is cancelled."""
        context = stream.context
        while True:
            error = context.error()
            if error is not None:
                raise error
            try:
                payload = stream.recv()
            except EndOfStream:
                return
            except Exception:
                time.sleep(0.01)
                continue
            try:
                envelope = Envelope.unmarshal(payload)
            except ValueError as exc:
                log.warning("Received bad envelope: %s", exc)
                continue
            self._v1_buf.set(envelope)
            self._v2_buf.set(to_v2(envelope, True))
            self._ingress_metric.increment(1)