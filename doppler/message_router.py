"""Reads v1 envelopes from a buffer and hands them to every sender."""

from __future__ import annotations

import logging
import threading

from .buffers import RingBuffer
from .envelopes import UUID, Envelope, EventType

log = logging.getLogger(__name__)

SYSTEM_APP_ID = "system"


def format_uuid(uuid: UUID) -> str:
    """Format a UUID from its little-endian halves."""
    return str(uuid)


def get_app_id(envelope: Envelope) -> str:
    """The application an envelope belongs to, or 'system'."""
    kind = envelope.event_type
    if kind is EventType.LOG_MESSAGE:
        return (envelope.log_message and envelope.log_message.app_id) or ""
    if kind is EventType.CONTAINER_METRIC:
        return envelope.container_metric.application_id if envelope.container_metric else ""
    hss = envelope.http_start_stop
    if kind is EventType.HTTP_START_STOP and hss is not None and hss.application_id is not None:
        return format_uuid(hss.application_id)
    return SYSTEM_APP_ID


class MessageRouter:
    def __init__(self, *senders) -> None:
        self._senders = senders
        self._done = threading.Event()

    def start(self, incoming: RingBuffer) -> None:
        """Route envelopes from the buffer until stop() is called."""
        log.info("MessageRouter:Starting")
        while not self._done.is_set():
            envelope = incoming.next(timeout=0.05)
            if envelope is None:
                continue
            app_id = get_app_id(envelope)
            for sender in self._senders:
                sender.send_to(app_id, envelope)

    def stop(self) -> None:
        self._done.set()