import threading

import pytest

from doppler.envelopes import Envelope, EventType
from doppler.v1_router import EnvelopeRouter, Filter, SubscriptionRequest


class SpyDataSetter:
    def __init__(self):
        self.set_calls = 0
        self.set_input = None

    @property
    def set_called(self):
        return self.set_calls > 0

    def set(self, data):
        self.set_calls += 1
        self.set_input = data


COUNTER = Envelope(origin="some-origin", event_type=EventType.COUNTER_EVENT)
LOG = Envelope(origin="some-origin", event_type=EventType.LOG_MESSAGE)


@pytest.fixture
def router():
    return EnvelopeRouter()


@pytest.fixture
def firehose(router):
    multiple = [SpyDataSetter(), SpyDataSetter()]
    single = SpyDataSetter()
    req_multi = SubscriptionRequest(shard_id="some-sub-id")
    router.register(req_multi, multiple[0])
    router.register(req_multi, multiple[1])
    cleanup = router.register(SubscriptionRequest(shard_id="some-other-sub-id"), single)
    return multiple, single, cleanup


def test_firehose_receives_all(router, firehose):
    _, single, _ = firehose
    router.send_to("some-app-id", LOG)
    assert single.set_input == LOG.marshal()


def test_same_shard_gets_one(router, firehose):
    multiple, _, _ = firehose
    router.send_to("some-app-id", LOG)
    assert multiple[0].set_calls + multiple[1].set_calls == 1


def test_unregistered_firehose(router, firehose):
    _, single, cleanup = firehose
    cleanup()
    router.send_to("some-app-id", COUNTER)
    assert single.set_called is False


def test_ignores_invalid(router, firehose):
    _, single, _ = firehose
    router.send_to("some-app-id", Envelope())
    assert single.set_called is False


@pytest.fixture
def app_streams(router):
    a = [SpyDataSetter(), SpyDataSetter()]
    b = SpyDataSetter()
    req_a = SubscriptionRequest(filter=Filter(app_id="some-app-id"))
    req_b = SubscriptionRequest(filter=Filter(app_id="some-other-app-id"))
    router.register(req_a, a[0])
    router.register(req_a, a[1])
    cleanup_b = router.register(req_b, b)
    return a, b, req_b, cleanup_b


def test_thread_safety(router, app_streams):
    _, b, req_b, _ = app_streams
    cleanup = router.register(req_b, b)
    t = threading.Thread(target=router.send_to, args=("some-other-app-id", COUNTER))
    t.start()
    cleanup()
    t.join(2)
    assert not t.is_alive()


def test_all_app_subscriptions(router, app_streams):
    a, _, _, _ = app_streams
    router.send_to("some-app-id", COUNTER)
    assert a[0].set_input == COUNTER.marshal()
    assert a[1].set_input == COUNTER.marshal()


def test_once_per_subscription(router, app_streams):
    _, b, _, _ = app_streams
    router.send_to("some-other-app-id", COUNTER)
    assert b.set_calls == 1


def test_cleanup_app(router, app_streams):
    _, b, _, cleanup = app_streams
    cleanup()
    router.send_to("some-app-id", COUNTER)
    assert b.set_called is False


def test_other_app_untouched(router, app_streams):
    _, b, _, _ = app_streams
    router.send_to("some-app-id", COUNTER)
    assert b.set_called is False


def test_log_filter(router):
    stream = SpyDataSetter()
    router.register(SubscriptionRequest(filter=Filter(app_id="some-app-id", log=True)), stream)
    router.send_to("some-app-id", COUNTER)
    assert stream.set_called is False
    router.send_to("some-app-id", LOG)
    assert stream.set_input == LOG.marshal()


def test_metric_filter(router):
    stream = SpyDataSetter()
    router.register(SubscriptionRequest(filter=Filter(metric=True)), stream)
    router.send_to("some-app-id", LOG)
    assert stream.set_called is False
    router.send_to("some-app-id", COUNTER)
    assert stream.set_input == COUNTER.marshal()