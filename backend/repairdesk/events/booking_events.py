"""Booking domain events."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class BookingEventType(str, Enum):
    CREATED = "created"
    ASSIGNED = "assigned"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    STATUS_CHANGED = "status_changed"


@dataclass
class BookingEvent:
    """Fired after a booking transition has been committed."""

    event_type: BookingEventType
    booking: Dict[str, Any]
    user_id: str
    technician_id: Optional[str]  # technician's user id, for fan-out
    changed_by: Optional[str]
    previous_status: Optional[str]
    new_status: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def booking_id(self) -> Optional[str]:
        return self.booking.get("id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "booking": dict(self.booking),
            "user_id": self.user_id,
            "technician_id": self.technician_id,
            "changed_by": self.changed_by,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "occurred_at": self.occurred_at.isoformat(),
        }
