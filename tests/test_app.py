import queue
import threading
import time

import pytest

from doppler.app import Router, with_buffer_sizes, with_metric_reporting
from doppler.config import GRPC, Agent
from doppler.envelopes import Envelope, EventType, Log, LogMessage, V2Envelope
from doppler.pubsub import EgressBatchRequest, Selector
from doppler.streams import EndOfStream, StreamContext, UnimplementedError
from doppler.v1_router import Filter, SubscriptionRequest

GRPC_CONFIG = GRPC(ca_file="loggregator-ca.crt", cert_file="doppler.crt", key_file="doppler.key")


@pytest.fixture
def router():
    r = Router(
        GRPC_CONFIG,
        with_buffer_sizes(10000, 1000),
        with_metric_reporting(Agent(grpc_address="127.0.0.1:0"), 100, "doppler"),
    )
    r.start()
    yield r
    r.stop()


def _log_envelope():
    return V2Envelope(timestamp=time.time_ns(), message=Log(payload=b"hello world"))


class _Stream:
    def __init__(self, items):
        self._items = list(items)
        self.context = StreamContext()

    def recv(self):
        if not self._items:
            raise EndOfStream()
        return self._items.pop(0)


class _Receiver:
    def __init__(self):
        self.context = StreamContext()
        self.batches = queue.Queue()

    def send(self, batch):
        self.batches.put(batch)


def _start(method, request, receiver):
    def target():
        try:
            method(request, receiver)
        except Exception:
            pass

    threading.Thread(target=target, daemon=True).start()


def _pump_until(send_one, received, attempts=60):
    for _ in range(attempts):
        send_one()
        try:
            return received.get(timeout=0.05)
        except queue.Empty:
            continue
    raise AssertionError("nothing was received")


def _log_request():
    return EgressBatchRequest(selectors=[Selector(message=Log)])


def test_options_are_applied(router):
    assert router.config.ingress_buffer_size == 10000
    assert router.config.egress_buffer_size == 1000
    assert router.config.agent.grpc_address == "127.0.0.1:0"
    assert router.config.metric_batch_interval_milliseconds == 100


def test_defaults_without_options():
    r = Router(GRPC_CONFIG)
    assert r.config.agent.grpc_address == "127.0.0.1:3458"
    assert r.config.metric_batch_interval_milliseconds == 5000
    assert r.config.grpc.cert_file == "doppler.crt"


def test_reports_metrics_with_source_id(router):
    assert router.metric_client.source_id == "doppler"
    assert router.metric_client.origin == "loggregator.doppler"


def test_v2_sender_envelopes_reach_egress(router):
    receiver = _Receiver()
    _start(router.v2_egress.batched_receiver, _log_request(), receiver)

    def send_one():
        with pytest.raises(EndOfStream):
            router.v2_ingress.sender(_Stream([_log_envelope()]))

    try:
        batch = _pump_until(send_one, receiver.batches)
    finally:
        receiver.context.cancel()
    assert len(batch) >= 1
    assert batch[0].message.payload == b"hello world"
    assert router.metric_client.get_delta("ingress") >= 1


def test_v2_batch_sender_envelopes_reach_egress(router):
    receiver = _Receiver()
    _start(router.v2_egress.batched_receiver, _log_request(), receiver)

    def send_one():
        with pytest.raises(EndOfStream):
            router.v2_ingress.batch_sender(_Stream([[_log_envelope(), _log_envelope()]]))

    try:
        batch = _pump_until(send_one, receiver.batches)
    finally:
        receiver.context.cancel()
    assert len(batch) >= 1
    assert all(isinstance(e.message, Log) for e in batch)


def test_send_is_unimplemented(router):
    with pytest.raises(UnimplementedError, match="this endpoint is not yet implemented"):
        router.v2_ingress.send([_log_envelope()])


def test_no_selectors_egress_nothing(router):
    receiver = _Receiver()
    _start(router.v2_egress.batched_receiver, EgressBatchRequest(selectors=[]), receiver)
    try:
        for _ in range(10):
            with pytest.raises(EndOfStream):
                router.v2_ingress.batch_sender(_Stream([[_log_envelope()]]))
            time.sleep(0.05)
        with pytest.raises(queue.Empty):
            receiver.batches.get(timeout=0.5)
    finally:
        receiver.context.cancel()


def test_v1_egress_receives_v2_ingress(router):
    receiver = _Receiver()
    _start(router.v1_egress.subscribe, SubscriptionRequest(filter=Filter()), receiver)

    def send_one():
        with pytest.raises(EndOfStream):
            router.v2_ingress.sender(_Stream([_log_envelope()]))

    try:
        payload = _pump_until(send_one, receiver.batches)
    finally:
        receiver.context.cancel()
    envelope = Envelope.unmarshal(payload)
    assert envelope.event_type is EventType.LOG_MESSAGE
    assert envelope.log_message.message == b"hello world"


def test_v1_ingestor_envelopes_reach_v2_egress(router):
    receiver = _Receiver()
    _start(router.v2_egress.batched_receiver, _log_request(), receiver)
    data = Envelope(
        origin="doppler",
        event_type=EventType.LOG_MESSAGE,
        timestamp=1,
        log_message=LogMessage(message=b"from v1", app_id="some-app"),
    ).marshal()

    batch = None
    try:
        for _ in range(60):
            assert router.v1_ingress.pusher(_Stream([data])) is None
            try:
                batch = receiver.batches.get(timeout=0.05)
                break
            except queue.Empty:
                continue
    finally:
        receiver.context.cancel()
    assert batch is not None
    assert batch[0].message.payload == b"from v1"
    assert batch[0].source_id == "some-app"


def test_stop_before_start_raises():
    with pytest.raises(RuntimeError):
        Router(GRPC_CONFIG).stop()


def test_start_twice_raises(router):
    with pytest.raises(RuntimeError):
        router.start()