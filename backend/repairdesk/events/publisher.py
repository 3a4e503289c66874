"""Event publisher port and the in-process implementation."""

import logging
from typing import Callable, Dict, List, Optional, Protocol

from .booking_events import BookingEvent, BookingEventType

logger = logging.getLogger(__name__)

BookingEventListener = Callable[[BookingEvent], None]


class BookingEventPublisher(Protocol):
    """What the orchestration services need from an event sink."""

    def publish(self, event: BookingEvent) -> None:
        ...


class InProcessEventBus:
    """
    Synchronous listener registry.

    Listeners subscribe to one event type or, with ``None``, to all of them.
    Delivery is best-effort: a failing listener is logged and the remaining
    listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: Dict[Optional[BookingEventType], List[BookingEventListener]] = {}

    def subscribe(
        self,
        listener: BookingEventListener,
        event_type: Optional[BookingEventType] = None,
    ) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def unsubscribe(
        self,
        listener: BookingEventListener,
        event_type: Optional[BookingEventType] = None,
    ) -> None:
        self._listeners[event_type] = [
            existing for existing in self._listeners.get(event_type, []) if existing is not listener
        ]

    def publish(self, event: BookingEvent) -> None:
        targets = list(self._listeners.get(event.event_type, [])) + list(
            self._listeners.get(None, [])
        )
        for listener in targets:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Booking event listener error",
                    extra={"event_type": event.event_type.value, "booking_id": event.booking_id},
                )
        logger.info(
            "booking_event=%s booking_id=%s new_status=%s",
            event.event_type.value,
            event.booking_id,
            event.new_status,
        )


class NullPublisher:
    """Publisher that drops every event."""

    def publish(self, event: BookingEvent) -> None:
        return None
