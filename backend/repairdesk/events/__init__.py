from .booking_events import BookingEvent, BookingEventType
from .publisher import BookingEventListener, BookingEventPublisher, InProcessEventBus, NullPublisher

__all__ = [
    "BookingEvent",
    "BookingEventListener",
    "BookingEventPublisher",
    "BookingEventType",
    "InProcessEventBus",
    "NullPublisher",
]
