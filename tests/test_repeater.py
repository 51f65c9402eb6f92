import queue
import threading

from doppler.envelopes import V2Envelope
from doppler.repeater import Repeater


def test_passes_result_of_next_to_sender():
    stream = queue.Queue()
    repeater = Repeater(stream.put, lambda: V2Envelope(source_id="some-source-id"))
    t = threading.Thread(target=repeater.start, daemon=True)
    t.start()
    try:
        actual = stream.get(timeout=2)
    finally:
        repeater.stop()
        t.join(2)
    assert actual == V2Envelope(source_id="some-source-id")
    assert not t.is_alive()