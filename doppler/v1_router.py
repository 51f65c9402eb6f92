"""Pub-sub routing of v1 envelopes to registered data setters."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .envelopes import Envelope, EventType


class DataSetter(Protocol):
    def set(self, data: bytes) -> None: ...


class _FilterType(Enum):
    NONE = 0
    LOG = 1
    METRIC = 2


@dataclass(frozen=True)
class Filter:
    """Subscription filter; metric takes precedence over log."""

    app_id: str = ""
    log: bool = False
    metric: bool = False


@dataclass(frozen=True)
class SubscriptionRequest:
    shard_id: str = ""
    filter: Optional[Filter] = None


_Key = Tuple[str, _FilterType]


def _key(request: SubscriptionRequest) -> _Key:
    f = request.filter
    if f is None:
        return ("", _FilterType.NONE)
    kind = _FilterType.NONE
    if f.log:
        kind = _FilterType.LOG
    if f.metric:
        kind = _FilterType.METRIC
    return (f.app_id, kind)


def _envelope_type(envelope: Envelope) -> _FilterType:
    return _FilterType.LOG if envelope.event_type is EventType.LOG_MESSAGE else _FilterType.METRIC


class EnvelopeRouter:
    """Sends each envelope to every matching setter, or one per shard ID."""

    def __init__(self, choose: Callable[[Sequence[DataSetter]], DataSetter] = random.choice) -> None:
        self._choose = choose
        self._lock = threading.Lock()
        self._subs: Dict[_Key, Dict[str, List[DataSetter]]] = {}

    def register(self, request: SubscriptionRequest, setter: DataSetter) -> Callable[[], None]:
        """Register a setter; call the returned function to unregister it."""
        key = _key(request)
        with self._lock:
            shards = self._subs.setdefault(key, {})
            shards.setdefault(request.shard_id, []).append(setter)

        def cleanup() -> None:
            with self._lock:
                shards = self._subs.get(key, {})
                remaining = [s for s in shards.get(request.shard_id, []) if s is not setter]
                if remaining:
                    shards[request.shard_id] = remaining
                    return
                shards.pop(request.shard_id, None)
                if not shards:
                    self._subs.pop(key, None)

        return cleanup

    def send_to(self, app_id: str, envelope: Envelope) -> None:
        try:
            data = envelope.marshal()
        except ValueError:
            return
        kind = _envelope_type(envelope)
        keys = [("", kind), ("", _FilterType.NONE)]
        if app_id:
            keys += [(app_id, _FilterType.NONE), (app_id, kind)]
        with self._lock:
            targets = [
                (shard, list(setters))
                for key in keys
                for shard, setters in self._subs.get(key, {}).items()
            ]
        for shard, setters in targets:
            if shard:
                self._choose(setters).set(data)
            else:
                for setter in setters:
                    setter.set(data)