# doppler

`doppler` routes log and metric envelopes from producers to subscribers inside
one Python process. Envelopes come in through two ingress paths. They are held
in bounded ring buffers that overwrite unread entries when full. They go out to
subscribers either one envelope at a time or in batches.

The package has no runtime dependencies.

## Modules

- `doppler.envelopes` holds the envelope data model.
  - `Envelope` is the v1 shape. It is built from `EventType`, `LogMessage`,
    `ContainerMetric`, `HttpStartStop`, `CounterEvent`, `ValueMetric` and
    `UUID`.
  - `Envelope.marshal()` encodes an envelope as compact JSON bytes.
    `Envelope.unmarshal(data)` decodes it.
  - Both raise `ValueError` for bad input or a missing `origin` or
    `event_type`.
  - `V2Envelope` is the v2 shape. It carries one of `Log`, `Counter`, `Gauge`
    (with `GaugeValue`), `Timer` or `Event`.
- `doppler.conversion` provides `to_v2(envelope, use_preferred_tags)` and
  `to_v1(envelope)`, which convert between the two shapes.
  - `to_v1` returns a list.
  - An event, or an envelope with no message, converts to an empty list.
  - A gauge carrying `cpu`, `memory` and `disk` becomes one container metric.
  - Any other gauge becomes one value metric per gauge entry.
- `doppler.buffers` provides `RingBuffer(size, alert)`, with `set`, `try_next`,
  a blocking `next(timeout)` and `close`.
  - Writers never block.
  - A reader that was lapped skips ahead and calls `alert(missed)` with the
    number of entries it lost.
  - `size` must be positive.
- `doppler.metrics` provides `Counter`, `Gauge` and `MetricClient`.
  - `MetricClient.new_counter` and `new_gauge` create metrics and keep track
    of them.
  - `MetricClient.get_delta(name)` sums every counter with that name.
  - Metrics are kept in memory only.
- `doppler.v1_router` provides `EnvelopeRouter` with `Filter` and
  `SubscriptionRequest`. It handles v1 subscriptions by app ID and by log or
  metric type.
  - `register(request, setter)` returns a function that removes the
    subscription.
  - `send_to(app_id, envelope)` delivers the marshalled envelope.
  - Setters that share a non-empty shard ID receive each envelope only once
    between them.
  - Envelopes that cannot be marshalled are ignored.
- `doppler.message_router` provides `MessageRouter(*senders)`.
  - `start(incoming)` reads v1 envelopes from a `RingBuffer` until `stop()` is
    called.
  - It passes each envelope to every sender's `send_to`, keyed by
    `get_app_id(envelope)`.
  - `get_app_id` returns `"system"` for envelopes that belong to no
    application.
  - `format_uuid(uuid)` renders a `UUID`.
- `doppler.pubsub` provides `PubSub` with `Selector` and `EgressBatchRequest`.
  It handles v2 subscriptions selected by source ID and message class (`Log`,
  `Counter`, `Gauge`, `Timer`, `Event`).
  - A counter selector can also match on a name.
  - A gauge selector can also match an exact set of metric names.
  - A selector without a message class selects nothing.
  - Subscribers with the same shard ID and selector share the stream.
  - With deterministic names, like counters and gauges always go to the same
    subscriber. The choice is made by their CRC-64 ECMA name hash
    (`crc64_ecma`).
- `doppler.repeater` provides `Repeater(writer, reader)`. It passes each value
  from the reader to the writer until `stop()` is called.
- `doppler.ingress_server` provides `IngressServer`, the v2 ingress.
  - `sender(stream)` takes one `V2Envelope` per `stream.recv()`.
  - `batch_sender(stream)` takes an iterable of them per call.
  - Both run until `recv()` raises, and that error propagates.
  - `send(batch)` raises `UnimplementedError`.
- `doppler.ingestor_server` provides `IngestorServer`, the v1 ingress.
  - `pusher(stream)` reads marshalled envelopes from `stream.recv()`.
  - It returns when `recv()` raises `EndOfStream`.
  - It retries after other errors.
  - It skips payloads that do not decode.
  - It raises `ContextCancelled` once `stream.context` is cancelled.
- Both ingress servers fill the v1 and v2 buffers and count ingress.
- `doppler.doppler_server` provides `DopplerServer`, the v1 egress.
  - `subscribe(request, sender)` sends marshalled envelopes one by one.
  - `batch_subscribe(request, sender)` sends lists of them.
  - Each subscription gets its own buffer, registered with the registrar.
  - It raises `ContextCancelled` when `sender.context` is cancelled.
- `doppler.egress_server` provides `EgressServer`, the v2 egress.
  - `batched_receiver(request, sender)` subscribes to a `PubSub`-like
    subscriber and sends lists of `V2Envelope`.
  - Batches are flushed after a quarter of a second without new envelopes.
  - `receiver` raises `UnimplementedError`.
- Both egress servers keep the subscriptions gauge up to date and count egress
  and drops (`alert(missed)`).
- `doppler.streams` provides `StreamContext`, a cancellable context with
  `cancel`, `cancelled`, `wait(timeout)` and `error`. It also defines the
  errors `ContextCancelled`, `UnimplementedError` and `EndOfStream`.
- `doppler.config` provides `Config`, `GRPC`, `Agent`, `ConfigError` and
  `load_config(environ)`.
- `doppler.app` provides `Router`, which wires all of the above together.
  - It is configured with `with_buffer_sizes(...)` and
    `with_metric_reporting(...)`.
  - `start()` builds the servers and exposes them as `v1_ingress`,
    `v1_egress`, `v2_ingress`, `v2_egress` and `metric_client`.
  - `start()` also runs the message router and the v2 repeater in background
    threads.
  - `stop()` ends those threads.
- `doppler.portwait` provides `color(...)`, which builds a coloured output
  prefix. It also provides `wait_for_port_binding(prefix, read, attempts,
  interval)`.
  - `wait_for_port_binding` polls `read()` for a line such as
    `grpc bound to: 127.0.0.1:8082` and returns the port.
  - It raises `TimeoutError` if no such line appears.

Streams are plain objects. An ingress stream has `recv()`, and for `pusher`
also a `context`. An egress sender has `send(...)` and a `context` attribute
holding a `StreamContext`.

## Example

```python
from doppler.envelopes import Log, V2Envelope
from doppler.pubsub import EgressBatchRequest, PubSub, Selector


class Collector:
    def __init__(self):
        self.received = []

    def set(self, envelope):
        self.received.append(envelope)


pubsub = PubSub()
collector = Collector()
unsubscribe = pubsub.subscribe(
    EgressBatchRequest(selectors=[Selector(message=Log)]), collector
)
pubsub.publish(V2Envelope(source_id="app", message=Log(payload=b"hello")))
assert len(collector.received) == 1
unsubscribe()
```

A whole router:

```python
from doppler.app import Router, with_buffer_sizes
from doppler.config import GRPC

router = Router(GRPC(), with_buffer_sizes(10000, 1000))
router.start()
# router.v2_ingress.sender(stream), router.v2_egress.batched_receiver(request, sender), ...
router.stop()
```

The ingress buffer size must be positive before `start()`. The default of `0`
is rejected by `RingBuffer`.

## Configuration

`load_config(environ)` reads a mapping of environment variables. It uses
`os.environ` when none is given.

| Variable | Meaning | Default |
| --- | --- | --- |
| `ROUTER_PORT` | port (0–65535) | `0` |
| `ROUTER_CERT_FILE` | certificate file (required) | |
| `ROUTER_KEY_FILE` | key file (required) | |
| `ROUTER_CA_FILE` | CA file (required) | |
| `ROUTER_CIPHER_SUITES` | comma-separated cipher suites | |
| `INGRESS_BUFFER_SIZE` | size of the ingress buffers | `0` |
| `EGRESS_BUFFER_SIZE` | size of each v1 subscription buffer | `0` |
| `USE_RFC339` | boolean flag | `false` |
| `ROUTER_PPROF_PORT` | profiling port | `0` |
| `AGENT_GRPC_ADDRESS` | metrics agent address | |
| `ROUTER_METRIC_BATCH_INTERVAL_MILLISECONDS` | metric batch interval | `5000` |
| `ROUTER_METRIC_SOURCE_ID` | source ID of the router's metrics | `doppler` |

A value that does not parse raises `ConfigError`. So does a configuration
without a CA, certificate or key file, and the error names the missing
setting.

```python
from doppler.config import load_config

config = load_config({
    "ROUTER_CA_FILE": "/etc/doppler/ca.crt",
    "ROUTER_CERT_FILE": "/etc/doppler/doppler.crt",
    "ROUTER_KEY_FILE": "/etc/doppler/doppler.key",
    "INGRESS_BUFFER_SIZE": "10000",
    "EGRESS_BUFFER_SIZE": "1000",
})
print(config.metric_source_id)  # "doppler"
```

## What the package does not do

- Everything happens inside one process. The package opens no network
  listener and speaks no wire protocol.
- It sets up no TLS. The port, certificate, key, CA, cipher-suite and
  profiling settings are read and validated but not used to serve anything.
- Metrics are counted in memory and never sent to the agent address.
- There is no command-line program. A caller builds a `Router` and drives its
  ingress and egress servers with its own stream objects.

## Running the tests

Install the `test` extra and run `pytest`.