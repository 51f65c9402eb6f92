"""Publish/subscribe of v2 envelopes with selectors and shard routing."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .envelopes import Counter, Event, Gauge, Log, Timer, V2Envelope

_MASK = (1 << 64) - 1
_SELECTABLE = (Log, Counter, Gauge, Timer, Event)


def _make_table(poly: int) -> Tuple[int, ...]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = (crc >> 1) ^ poly if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_TABLE = _make_table(0xC96C5795D7870F42)


def crc64_ecma(data: bytes) -> int:
    """CRC-64 over the ECMA polynomial (reflected, inverted in and out)."""
    crc = _MASK
    for byte in data:
        crc = _TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ _MASK


@dataclass(frozen=True)
class Selector:
    """Selects envelopes by message class (Log, Counter, Gauge, Timer, Event).

    A selector without a message class selects nothing.
    """

    source_id: str = ""
    message: Optional[type] = None
    counter_name: str = ""
    gauge_names: Sequence[str] = ()

    def __post_init__(self) -> None:
        if self.message is not None and self.message not in _SELECTABLE:
            raise ValueError(f"unsupported selector message type: {self.message!r}")


@dataclass
class EgressBatchRequest:
    shard_id: str = ""
    deterministic_name: str = ""
    selectors: List[Selector] = field(default_factory=list)


@dataclass(frozen=True)
class _Filter:
    source_id: str
    kind: type
    counter_name: str
    gauge_names: FrozenSet[str]

    def matches(self, envelope: V2Envelope) -> bool:
        message = envelope.message
        return (
            (not self.source_id or self.source_id == envelope.source_id)
            and isinstance(message, self.kind)
            and (not self.counter_name or message.name == self.counter_name)
            and (not self.gauge_names or frozenset(message.metrics) == self.gauge_names)
        )


def _filter(selector: Selector) -> _Filter:
    return _Filter(
        source_id=selector.source_id,
        kind=selector.message,
        counter_name=selector.counter_name if selector.message is Counter else "",
        gauge_names=frozenset(selector.gauge_names if selector.message is Gauge else ()),
    )


@dataclass(eq=False)
class _Subscription:
    filter: _Filter
    shard_id: str
    deterministic_name: str
    setter: object


class PubSub:
    """Routes envelopes to matching subscribers.

    Subscribers sharing a shard ID and selector split the stream; those with
    deterministic names receive like counters and gauges consistently.
    """

    def __init__(self, rand: Callable[[int], int] = random.randrange) -> None:
        self._rand = rand
        self._lock = threading.Lock()
        self._subs: List[_Subscription] = []

    def publish(self, envelope: V2Envelope) -> None:
        with self._lock:
            subs = list(self._subs)
        groups: Dict[Tuple[_Filter, str], List[_Subscription]] = {}
        for sub in subs:
            if sub.filter.matches(envelope):
                groups.setdefault((sub.filter, sub.shard_id), []).append(sub)
        for (_, shard_id), members in groups.items():
            chosen = members if not shard_id else [self._pick(envelope, members)]
            for member in chosen:
                member.setter.set(envelope)

    def subscribe(self, request: EgressBatchRequest, setter) -> Callable[[], None]:
        """Subscribe for every selector with a message type; returns an unsubscribe."""
        created = [
            _Subscription(_filter(s), request.shard_id, request.deterministic_name, setter)
            for s in request.selectors
            if s.message is not None
        ]
        with self._lock:
            self._subs.extend(created)

        def unsubscribe() -> None:
            with self._lock:
                self._subs = [s for s in self._subs if all(s is not c for c in created)]

        return unsubscribe

    def _pick(self, envelope: V2Envelope, members: List[_Subscription]) -> _Subscription:
        names = sorted({m.deterministic_name for m in members if m.deterministic_name})
        if names:
            chosen = names[self._hash(envelope) % len(names)]
            members = [m for m in members if m.deterministic_name == chosen]
        return members[self._rand(len(members))]

    @staticmethod
    def _hash(envelope: V2Envelope) -> int:
        message = envelope.message
        if isinstance(message, Counter):
            return crc64_ecma(message.name.encode("utf-8"))
        if isinstance(message, Gauge):
            return sum(crc64_ecma(name.encode("utf-8")) for name in message.metrics) & _MASK
        return random.getrandbits(64)