"""The router: wires ingress, buffers, routing and egress together."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from .buffers import RingBuffer
from .config import GRPC, Agent, Config
from .doppler_server import DopplerServer
from .egress_server import EgressServer
from .envelopes import V2Envelope
from .ingestor_server import IngestorServer
from .ingress_server import IngressServer
from .message_router import MessageRouter
from .metrics import Counter, MetricClient
from .pubsub import PubSub
from .repeater import Repeater
from .v1_router import EnvelopeRouter

log = logging.getLogger(__name__)

RouterOption = Callable[["Router"], None]

_EGRESS_BATCH_INTERVAL = 0.1
_EGRESS_BATCH_SIZE = 100
_POLL = 0.05


def with_buffer_sizes(ingress_buffer_size: int, egress_buffer_size: int) -> RouterOption:
    """Option setting the ingress and egress buffer sizes."""

    def apply(router: "Router") -> None:
        router.config.ingress_buffer_size = ingress_buffer_size
        router.config.egress_buffer_size = egress_buffer_size

    return apply


def with_metric_reporting(
    agent: Agent, metric_batch_interval_ms: int, source_id: str
) -> RouterOption:
    """Option configuring how the router reports metrics about itself."""

    def apply(router: "Router") -> None:
        router.config.agent = agent
        router.config.metric_batch_interval_milliseconds = metric_batch_interval_ms
        router.config.metric_source_id = source_id

    return apply


def _drop_alert(label: str, counter: Counter) -> Callable[[int], None]:
    def alert(missed: int) -> None:
        log.warning("Dropped %d envelopes (%s buffer)", missed, label)
        counter.increment(missed)

    return alert


class Router:
    """Routes envelopes from producers to any subscribers."""

    def __init__(self, grpc: GRPC, *opts: RouterOption) -> None:
        self.config = Config(
            grpc=grpc,
            agent=Agent(grpc_address="127.0.0.1:3458"),
            metric_batch_interval_milliseconds=5000,
        )
        self.metric_client: Optional[MetricClient] = None
        self.v1_ingress: Optional[IngestorServer] = None
        self.v1_egress: Optional[DopplerServer] = None
        self.v2_ingress: Optional[IngressServer] = None
        self.v2_egress: Optional[EgressServer] = None
        self._message_router: Optional[MessageRouter] = None
        self._repeater: Optional[Repeater] = None
        self._buffers: List[RingBuffer] = []
        self._threads: List[threading.Thread] = []
        for opt in opts:
            opt(self)

    def start(self) -> None:
        """Build the servers and start routing in background threads."""
        if self._message_router is not None:
            raise RuntimeError("router already started")
        log.info("Startup: Setting up the router server")
        c = self.config

        metric_client = MetricClient(source_id=c.metric_source_id, origin="loggregator.doppler")
        ingress_dropped = metric_client.new_counter(
            "dropped", version=(2, 0), tags={"direction": "ingress"}
        )
        egress_dropped = metric_client.new_counter(
            "dropped", version=(2, 0), tags={"direction": "egress"}
        )
        ingress = metric_client.new_counter("ingress", version=(2, 0))

        v1_buf = RingBuffer(c.ingress_buffer_size, _drop_alert("v1", ingress_dropped))
        v2_buf = RingBuffer(c.ingress_buffer_size, _drop_alert("v2", ingress_dropped))

        subscriptions = metric_client.new_gauge("subscriptions", "subscriptions", version=(2, 0))

        v1_router = EnvelopeRouter()
        pubsub = PubSub()
        self.metric_client = metric_client
        self.v1_ingress = IngestorServer(v1_buf, v2_buf, ingress)
        self.v1_egress = DopplerServer(
            v1_router,
            metric_client,
            egress_dropped,
            subscriptions,
            _EGRESS_BATCH_INTERVAL,
            _EGRESS_BATCH_SIZE,
            c.egress_buffer_size,
        )
        self.v2_ingress = IngressServer(v1_buf, v2_buf, ingress)
        self.v2_egress = EgressServer(
            pubsub,
            metric_client,
            egress_dropped,
            subscriptions,
            _EGRESS_BATCH_INTERVAL,
            _EGRESS_BATCH_SIZE,
        )

        def publish(envelope: Optional[V2Envelope]) -> None:
            if envelope is not None:
                pubsub.publish(envelope)

        self._message_router = MessageRouter(v1_router)
        self._repeater = Repeater(publish, lambda: v2_buf.next(timeout=_POLL))
        self._buffers = [v1_buf, v2_buf]
        self._threads = [
            threading.Thread(
                target=self._message_router.start, args=(v1_buf,), name="message-router", daemon=True
            ),
            threading.Thread(target=self._repeater.start, name="repeater", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        log.info("Startup: router server started.")

    def stop(self) -> None:
        """Stop routing and wait for the background threads."""
        if self._message_router is None or self._repeater is None:
            raise RuntimeError("router has not been started")
        self._message_router.stop()
        self._repeater.stop()
        for buffer in self._buffers:
            buffer.close()
        for thread in self._threads:
            thread.join(timeout=1.0)
        self._message_router = None
        self._repeater = None
        self._threads = []