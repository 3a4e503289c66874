"""
Database models for the repairdesk platform.

The models are organized by functionality:
- Users and roles
- Technician profiles
- Bookings with status and reschedule history
- Pricing rules
- Payments and refunds
- Technician earnings
"""

from .booking import (
    Booking,
    BookingRescheduleHistory,
    BookingStatus,
    BookingStatusHistory,
    PaymentStatus,
    TimeSlot,
    Urgency,
)
from .earning import Earning, EarningStatus
from .payment import Payment, PaymentRecordStatus, PaymentRefund, RefundStatus
from .pricing_rule import PricingRule
from .technician import Technician, VerificationStatus
from .user import User

__all__ = [
    "Booking",
    "BookingRescheduleHistory",
    "BookingStatus",
    "BookingStatusHistory",
    "Earning",
    "EarningStatus",
    "Payment",
    "PaymentRecordStatus",
    "PaymentRefund",
    "PaymentStatus",
    "PricingRule",
    "RefundStatus",
    "Technician",
    "TimeSlot",
    "Urgency",
    "User",
    "VerificationStatus",
]
