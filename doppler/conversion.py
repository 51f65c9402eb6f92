"""Conversion between v1 and v2 envelopes."""

from __future__ import annotations

from typing import Dict, List

from .envelopes import (
    ContainerMetric,
    Counter,
    CounterEvent,
    Envelope,
    Event,
    EventType,
    Gauge,
    GaugeValue,
    HttpStartStop,
    Log,
    LogMessage,
    MessageType,
    Timer,
    V2Envelope,
    ValueMetric,
)

_METADATA = ("origin", "deployment", "job", "index", "ip")
_CONTAINER_KEYS = {"cpu", "memory", "disk"}


def to_v2(envelope: Envelope, use_preferred_tags: bool) -> V2Envelope:
    """Convert a v1 envelope; metadata goes to tags or deprecated tags."""
    meta: Dict[str, str] = {
        n: getattr(envelope, n) for n in _METADATA if getattr(envelope, n) is not None
    }
    meta.update(envelope.tags)
    source = envelope.tags.get("source_id", envelope.origin or "")
    out = V2Envelope(source_id=source, timestamp=envelope.timestamp or 0)
    if use_preferred_tags:
        out.tags = meta
    else:
        out.deprecated_tags = meta

    kind = envelope.event_type
    if kind is EventType.LOG_MESSAGE and envelope.log_message:
        lm = envelope.log_message
        out.message = Log(lm.message, "ERR" if lm.message_type is MessageType.ERR else "OUT")
        out.source_id = lm.app_id or source
        out.instance_id = lm.source_instance or ""
        if lm.source_type is not None:
            meta["source_type"] = lm.source_type
    elif kind is EventType.COUNTER_EVENT and envelope.counter_event:
        ce = envelope.counter_event
        out.message = Counter(ce.name, ce.delta, ce.total)
    elif kind is EventType.VALUE_METRIC and envelope.value_metric:
        vm = envelope.value_metric
        out.message = Gauge({vm.name: GaugeValue(vm.unit, vm.value)})
    elif kind is EventType.CONTAINER_METRIC and envelope.container_metric:
        cm = envelope.container_metric
        out.message = Gauge({
            "cpu": GaugeValue("percentage", cm.cpu_percentage),
            "memory": GaugeValue("bytes", float(cm.memory_bytes)),
            "disk": GaugeValue("bytes", float(cm.disk_bytes)),
            "memory_quota": GaugeValue("bytes", float(cm.memory_bytes_quota)),
            "disk_quota": GaugeValue("bytes", float(cm.disk_bytes_quota)),
        })
        out.source_id = cm.application_id
        out.instance_id = str(cm.instance_index)
    elif kind is EventType.HTTP_START_STOP and envelope.http_start_stop:
        hss = envelope.http_start_stop
        out.message = Timer("http", hss.start_timestamp, hss.stop_timestamp)
        if hss.application_id is not None:
            out.source_id = str(hss.application_id)
        out.instance_id = hss.instance_id
    return out


def to_v1(envelope: V2Envelope) -> List[Envelope]:
    """Convert a v2 envelope into zero or more v1 envelopes."""
    tags = {**envelope.deprecated_tags, **envelope.tags}
    message = envelope.message
    if message is None or isinstance(message, Event):
        return []
    rest = {k: v for k, v in tags.items() if k not in _METADATA and k != "source_type"}

    def base(kind: EventType, **extra) -> Envelope:
        return Envelope(
            origin=tags.get("origin", ""),
            event_type=kind,
            timestamp=envelope.timestamp,
            deployment=tags.get("deployment"),
            job=tags.get("job"),
            index=tags.get("index"),
            ip=tags.get("ip"),
            tags=dict(rest),
            **extra,
        )

    if isinstance(message, Log):
        return [base(EventType.LOG_MESSAGE, log_message=LogMessage(
            message=message.payload,
            message_type=MessageType.ERR if message.type == "ERR" else MessageType.OUT,
            timestamp=envelope.timestamp,
            app_id=envelope.source_id,
            source_type=tags.get("source_type"),
            source_instance=envelope.instance_id,
        ))]
    if isinstance(message, Counter):
        return [base(EventType.COUNTER_EVENT,
                     counter_event=CounterEvent(message.name, message.delta, message.total))]
    if isinstance(message, Timer):
        return [base(EventType.HTTP_START_STOP, http_start_stop=HttpStartStop(
            start_timestamp=message.start,
            stop_timestamp=message.stop,
            instance_id=envelope.instance_id,
        ))]
    metrics = message.metrics
    if _CONTAINER_KEYS <= set(metrics):
        try:
            index = int(envelope.instance_id or 0)
        except ValueError:
            index = 0

        def value(name: str) -> float:
            return metrics[name].value if name in metrics else 0.0

        return [base(EventType.CONTAINER_METRIC, container_metric=ContainerMetric(
            application_id=envelope.source_id,
            instance_index=index,
            cpu_percentage=value("cpu"),
            memory_bytes=int(value("memory")),
            disk_bytes=int(value("disk")),
            memory_bytes_quota=int(value("memory_quota")),
            disk_bytes_quota=int(value("disk_quota")),
        ))]
    return [
        base(EventType.VALUE_METRIC, value_metric=ValueMetric(name, gv.value, gv.unit))
        for name, gv in sorted(metrics.items())
    ]