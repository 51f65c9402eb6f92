"""Envelope data types for the v1 (event) and v2 (loggregator) formats."""

from __future__ import annotations

import base64
import json
import struct
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union


class EventType(Enum):
    HTTP_START_STOP = 4
    LOG_MESSAGE = 5
    VALUE_METRIC = 6
    COUNTER_EVENT = 7
    ERROR = 8
    CONTAINER_METRIC = 9


class MessageType(Enum):
    OUT = 1
    ERR = 2


@dataclass(frozen=True)
class UUID:
    """A 128-bit identifier stored as two little-endian 64-bit halves."""

    low: int = 0
    high: int = 0

    def __str__(self) -> str:
        raw = struct.pack("<QQ", self.low, self.high)
        return "-".join(raw[a:b].hex() for a, b in ((0, 4), (4, 6), (6, 8), (8, 10), (10, 16)))


@dataclass
class LogMessage:
    message: bytes = b""
    message_type: MessageType = MessageType.OUT
    timestamp: int = 0
    app_id: Optional[str] = None
    source_type: Optional[str] = None
    source_instance: Optional[str] = None


@dataclass
class ContainerMetric:
    application_id: str = ""
    instance_index: int = 0
    cpu_percentage: float = 0.0
    memory_bytes: int = 0
    disk_bytes: int = 0
    memory_bytes_quota: int = 0
    disk_bytes_quota: int = 0


@dataclass
class HttpStartStop:
    start_timestamp: int = 0
    stop_timestamp: int = 0
    request_id: Optional[UUID] = None
    method: str = "GET"
    uri: str = ""
    remote_address: str = ""
    user_agent: str = ""
    status_code: int = 0
    content_length: int = 0
    application_id: Optional[UUID] = None
    instance_index: int = 0
    instance_id: str = ""


@dataclass
class CounterEvent:
    name: str = ""
    delta: int = 0
    total: int = 0


@dataclass
class ValueMetric:
    name: str = ""
    value: float = 0.0
    unit: str = ""


def _encode(obj: Any) -> Any:
    if isinstance(obj, bytes):
        return base64.b64encode(obj).decode("ascii")
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"cannot encode {type(obj).__name__}")


def _build(cls: type, raw: Any, converters: Dict[str, Callable[[Any], Any]]) -> Any:
    if not isinstance(raw, dict):
        raise ValueError(f"expected an object for {cls.__name__}")
    kwargs = {
        k: converters[k](v) if v is not None and k in converters else v
        for k, v in raw.items()
    }
    return cls(**kwargs)


def _b64(raw: Any) -> bytes:
    return base64.b64decode(raw, validate=True)


def _uuid(raw: Any) -> UUID:
    return _build(UUID, raw, {})


_NESTED: Dict[str, Callable[[Any], Any]] = {
    "event_type": EventType,
    "log_message": lambda v: _build(LogMessage, v, {"message": _b64, "message_type": MessageType}),
    "container_metric": lambda v: _build(ContainerMetric, v, {}),
    "http_start_stop": lambda v: _build(
        HttpStartStop, v, {"request_id": _uuid, "application_id": _uuid}
    ),
    "counter_event": lambda v: _build(CounterEvent, v, {}),
    "value_metric": lambda v: _build(ValueMetric, v, {}),
}


@dataclass
class Envelope:
    """A v1 envelope; origin and event_type are required on the wire."""

    origin: Optional[str] = None
    event_type: Optional[EventType] = None
    timestamp: Optional[int] = None
    deployment: Optional[str] = None
    job: Optional[str] = None
    index: Optional[str] = None
    ip: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    log_message: Optional[LogMessage] = None
    container_metric: Optional[ContainerMetric] = None
    http_start_stop: Optional[HttpStartStop] = None
    counter_event: Optional[CounterEvent] = None
    value_metric: Optional[ValueMetric] = None

    def _check_required(self) -> None:
        for name in ("origin", "event_type"):
            if getattr(self, name) is None:
                raise ValueError(f"envelope is missing required field {name}")

    def marshal(self) -> bytes:
        """Encode the envelope; raises ValueError if required fields are missing."""
        self._check_required()
        return json.dumps(
            asdict(self), default=_encode, sort_keys=True, separators=(",", ":")
        ).encode()

    @classmethod
    def unmarshal(cls, data: bytes) -> "Envelope":
        """Decode bytes produced by marshal; raises ValueError on bad input."""
        try:
            env = _build(cls, json.loads(bytes(data).decode("utf-8")), _NESTED)
        except (UnicodeDecodeError, KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"invalid envelope: {exc}") from exc
        env._check_required()
        return env


@dataclass
class Log:
    payload: bytes = b""
    type: str = "OUT"


@dataclass
class Counter:
    name: str = ""
    delta: int = 0
    total: int = 0


@dataclass
class GaugeValue:
    unit: str = ""
    value: float = 0.0


@dataclass
class Gauge:
    metrics: Dict[str, GaugeValue] = field(default_factory=dict)


@dataclass
class Timer:
    name: str = ""
    start: int = 0
    stop: int = 0


@dataclass
class Event:
    title: str = ""
    body: str = ""


V2Message = Union[Log, Counter, Gauge, Timer, Event]


@dataclass
class V2Envelope:
    """A v2 envelope carrying at most one message."""

    source_id: str = ""
    instance_id: str = ""
    timestamp: int = 0
    tags: Dict[str, str] = field(default_factory=dict)
    deprecated_tags: Dict[str, str] = field(default_factory=dict)
    message: Optional[V2Message] = None