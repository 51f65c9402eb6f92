import pytest

from doppler.buffers import RingBuffer
from doppler.conversion import to_v2
from doppler.envelopes import ContainerMetric, Envelope, EventType
from doppler.ingestor_server import IngestorServer
from doppler.metrics import Counter
from doppler.streams import ContextCancelled, EndOfStream, StreamContext


class SpyStream:
    def __init__(self, payloads=(), error=None, cancel_after=None):
        self.context = StreamContext()
        self._payloads = list(payloads)
        self._error = error
        self._cancel_after = cancel_after
        self.calls = 0

    def recv(self):
        self.calls += 1
        if self._cancel_after is not None and self.calls >= self._cancel_after:
            self.context.cancel()
        if self._error is not None:
            raise self._error
        if not self._payloads:
            raise EndOfStream()
        return self._payloads.pop(0)


def build_container_metric():
    envelope = Envelope(
        origin="doppler",
        event_type=EventType.CONTAINER_METRIC,
        timestamp=1700000000000000000,
        container_metric=ContainerMetric(
            application_id="some-app",
            instance_index=1,
            cpu_percentage=1.0,
            memory_bytes=1,
            disk_bytes=1,
        ),
    )
    return envelope, envelope.marshal()


@pytest.fixture
def parts():
    return RingBuffer(5), RingBuffer(5), Counter("ingress", "doppler")


@pytest.fixture
def server(parts):
    v1_buf, v2_buf, metric = parts
    return IngestorServer(v1_buf, v2_buf, metric)


def test_reads_envelopes_into_v1_buffer(parts, server):
    v1_buf, _, metric = parts
    envelope, data = build_container_metric()

    server.pusher(SpyStream([data]))

    assert v1_buf.try_next() == envelope
    assert metric.get_delta() > 0


def test_reads_envelopes_into_v2_buffer(parts, server):
    _, v2_buf, _ = parts
    envelope, data = build_container_metric()

    server.pusher(SpyStream([data]))

    assert v2_buf.try_next() == to_v2(envelope, True)


def test_unsupported_payload_is_not_forwarded(parts, server):
    v1_buf, v2_buf, metric = parts

    server.pusher(SpyStream([b"unsupported envelope", b""]))

    assert v1_buf.try_next() is None
    assert v2_buf.try_next() is None
    assert metric.get_delta() == 0


def test_end_of_stream_returns_gracefully(parts, server):
    v1_buf, _, metric = parts
    stream = SpyStream()

    result = server.pusher(stream)

    assert result is None
    assert stream.calls == 1
    assert v1_buf.try_next() is None
    assert metric.get_delta() == 0


def test_recv_errors_are_retried_until_context_cancelled(parts, server):
    v1_buf, _, _ = parts
    stream = SpyStream(error=RuntimeError("fake error"), cancel_after=3)

    with pytest.raises(ContextCancelled, match="context canceled"):
        server.pusher(stream)

    assert stream.calls == 3
    assert v1_buf.try_next() is None


def test_cancelled_context_raises_immediately(server):
    stream = SpyStream(error=RuntimeError("fake error"))
    stream.context.cancel()

    with pytest.raises(ContextCancelled):
        server.pusher(stream)

    assert stream.calls == 0