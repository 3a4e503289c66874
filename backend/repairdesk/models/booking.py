# backend/repairdesk/models/booking.py
"""
Booking model for the repairdesk platform.

A booking is a single repair job moving through the lifecycle
pending -> assigned -> in_progress -> completed, with cancellation
branches. Status changes are never written by mutating a loaded
instance; BookingRepository issues conditional UPDATEs so that only
one concurrent actor can win a transition.

Status and reschedule history live in append-only child tables.
"""

from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})


class PaymentStatus(str, Enum):
    """Payment state as seen from the booking."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class Urgency(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    EMERGENCY = "emergency"


class TimeSlot(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


def _values(enum_cls: type[Enum]) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


class Booking(Base):
    """
    Repair job requested by a customer.

    The pricing breakdown is snapshotted at creation so later rule edits
    never change an existing estimate.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Parties
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    technician_id = Column(String(26), ForeignKey("technicians.id"), nullable=True, index=True)

    # Service details
    service_type = Column(String(100), nullable=False)
    issue_type = Column(String(100), nullable=True)
    urgency = Column(String(20), nullable=False, default=Urgency.NORMAL.value)
    description = Column(Text, nullable=False)
    device_info = Column(JSON, nullable=True)
    address = Column(JSON, nullable=True)
    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)

    # Scheduling
    preferred_date = Column(Date, nullable=False, index=True)
    preferred_time_slot = Column(String(20), nullable=False, default=TimeSlot.MORNING.value)

    # Lifecycle
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    payment_status = Column(String(30), nullable=False, default=PaymentStatus.PENDING.value)
    is_paid = Column(Boolean, nullable=False, default=False)

    # Pricing (whole currency units)
    estimated_cost = Column(Integer, nullable=True)
    final_cost = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, default="INR")
    pricing_breakdown = Column(JSON, nullable=True)

    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    technician = relationship("Technician", foreign_keys=[technician_id])
    status_history = relationship(
        "BookingStatusHistory",
        back_populates="booking",
        order_by="BookingStatusHistory.id",
        cascade="all, delete-orphan",
    )
    reschedule_history = relationship(
        "BookingRescheduleHistory",
        back_populates="booking",
        order_by="BookingRescheduleHistory.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(f"status IN ({_values(BookingStatus)})", name="ck_bookings_status"),
        CheckConstraint(
            f"payment_status IN ({_values(PaymentStatus)})", name="ck_bookings_payment_status"
        ),
        CheckConstraint(f"urgency IN ({_values(Urgency)})", name="ck_bookings_urgency"),
        CheckConstraint("reschedule_count >= 0", name="check_reschedule_count_non_negative"),
        CheckConstraint("estimated_cost IS NULL OR estimated_cost >= 0", name="check_cost"),
        CheckConstraint("final_cost IS NULL OR final_cost >= 0", name="check_final_cost"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Booking {self.id}: user={self.user_id}, technician={self.technician_id}, "
            f"date={self.preferred_date}, status={self.status}>"
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in {s.value for s in TERMINAL_STATUSES}

    @property
    def billable_amount(self) -> int:
        """Final cost when recorded, otherwise the estimate."""
        return int(self.final_cost or self.estimated_cost or 0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses and event payloads."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "technician_id": self.technician_id,
            "service_type": self.service_type,
            "issue_type": self.issue_type,
            "urgency": self.urgency,
            "description": self.description,
            "device_info": self.device_info,
            "preferred_date": self.preferred_date.isoformat() if self.preferred_date else None,
            "preferred_time_slot": self.preferred_time_slot,
            "status": self.status,
            "payment_status": self.payment_status,
            "is_paid": self.is_paid,
            "estimated_cost": self.estimated_cost,
            "final_cost": self.final_cost,
            "currency": self.currency,
            "pricing_breakdown": self.pricing_breakdown,
            "reschedule_count": self.reschedule_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }


class BookingStatusHistory(Base):
    """Append-only record of every committed status transition."""

    __tablename__ = "booking_status_history"

    # Autoincrement key gives commit order within a booking.
    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False)
    changed_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    note = Column(Text, nullable=True)

    booking = relationship("Booking", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<BookingStatusHistory booking={self.booking_id} status={self.status}>"


class BookingRescheduleHistory(Base):
    """Append-only record of date/slot moves."""

    __tablename__ = "booking_reschedule_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_date = Column(Date, nullable=True)
    from_time_slot = Column(String(20), nullable=True)
    to_date = Column(Date, nullable=False)
    to_time_slot = Column(String(20), nullable=True)
    reason = Column(Text, nullable=False)
    rescheduled_by_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    rescheduled_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    booking = relationship("Booking", back_populates="reschedule_history")

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "from": {
                "date": self.from_date.isoformat() if self.from_date else None,
                "time_slot": self.from_time_slot,
            },
            "to": {"date": self.to_date.isoformat(), "time_slot": self.to_time_slot},
            "reason": self.reason,
            "rescheduled_by": self.rescheduled_by_id,
        }


Index("ix_bookings_technician_status", Booking.technician_id, Booking.status)
Index("ix_bookings_status_date", Booking.status, Booking.preferred_date)
