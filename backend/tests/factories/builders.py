"""Small builders that insert rows directly, bypassing the services."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session
import ulid

from repairdesk.core.enums import RoleName
from repairdesk.core.timezone_utils import get_platform_today
from repairdesk.models.booking import Booking, BookingStatus, BookingStatusHistory, PaymentStatus
from repairdesk.models.earning import Earning, EarningStatus
from repairdesk.models.payment import Payment, PaymentRecordStatus
from repairdesk.models.pricing_rule import PricingRule
from repairdesk.models.technician import Technician, VerificationStatus
from repairdesk.models.user import User


def future_date(days: int = 3) -> date:
    return get_platform_today() + timedelta(days=days)


def make_user(session: Session, role: RoleName = RoleName.USER, **overrides: Any) -> User:
    suffix = str(ulid.ULID()).lower()
    fields = {
        "email": f"{role.value}-{suffix}@example.com",
        "name": f"{role.value.title()} {suffix[-6:]}",
        "role": role.value,
    }
    fields.update(overrides)
    user = User(**fields)
    session.add(user)
    session.flush()
    return user


def make_technician(
    session: Session,
    user: Optional[User] = None,
    *,
    specializations=("mobile",),
    **overrides: Any,
) -> Technician:
    owner = user or make_user(session, RoleName.TECHNICIAN)
    fields = {
        "user_id": owner.id,
        "specializations": list(specializations),
        "experience_years": 5,
        "average_rating": 4.0,
        "total_reviews": 10,
        "completed_repairs": 0,
        "is_available": True,
        "is_online": True,
        "verification_status": VerificationStatus.APPROVED.value,
    }
    fields.update(overrides)
    technician = Technician(**fields)
    session.add(technician)
    session.flush()
    return technician


def make_booking(
    session: Session,
    user: User,
    *,
    status: BookingStatus = BookingStatus.PENDING,
    technician: Optional[Technician] = None,
    paid: bool = False,
    **overrides: Any,
) -> Booking:
    fields = {
        "user_id": user.id,
        "technician_id": technician.id if technician else None,
        "service_type": "mobile",
        "issue_type": "screen_repair",
        "urgency": "normal",
        "description": "Cracked screen",
        "preferred_date": future_date(),
        "preferred_time_slot": "morning",
        "status": status.value,
        "payment_status": PaymentStatus.PAID.value if paid else PaymentStatus.PENDING.value,
        "is_paid": paid,
        "estimated_cost": 1000,
        "currency": "INR",
    }
    fields.update(overrides)
    booking = Booking(**fields)
    session.add(booking)
    session.flush()
    session.add(BookingStatusHistory(booking_id=booking.id, status=booking.status, changed_by_id=user.id))
    session.flush()
    return booking


def make_payment(
    session: Session,
    booking: Booking,
    *,
    status: PaymentRecordStatus = PaymentRecordStatus.COMPLETED,
    amount: Optional[int] = None,
    **overrides: Any,
) -> Payment:
    fields = {
        "booking_id": booking.id,
        "user_id": booking.user_id,
        "amount": amount if amount is not None else booking.billable_amount,
        "currency": booking.currency,
        "status": status.value,
        "gateway": "manual",
        "gateway_order_id": f"MANUAL-{ulid.ULID()}",
        "gateway_payment_id": f"MANUAL-PAY-{ulid.ULID()}",
        "refunded_amount": 0,
    }
    fields.update(overrides)
    payment = Payment(**fields)
    session.add(payment)
    session.flush()
    return payment


def make_earning(
    session: Session,
    booking: Booking,
    technician: Technician,
    *,
    status: EarningStatus = EarningStatus.PENDING,
    **overrides: Any,
) -> Earning:
    gross = booking.billable_amount
    fields = {
        "booking_id": booking.id,
        "technician_id": technician.id,
        "technician_user_id": technician.user_id,
        "gross_amount": gross,
        "commission_rate": 0.15,
        "platform_commission": round(gross * 0.15),
        "net_amount": gross - round(gross * 0.15),
        "currency": booking.currency,
        "status": status.value,
    }
    fields.update(overrides)
    earning = Earning(**fields)
    session.add(earning)
    session.flush()
    return earning


def make_pricing_rule(
    session: Session,
    service_type: str = "laptop",
    issue_type: str = "screen_repair",
    base_price: int = 3000,
    **overrides: Any,
) -> PricingRule:
    fields = {
        "service_type": service_type,
        "issue_type": issue_type,
        "base_price": base_price,
        "urgency_multipliers": {"normal": 1.0, "urgent": 1.5, "emergency": 2.0},
        "is_active": True,
    }
    fields.update(overrides)
    rule = PricingRule(**fields)
    session.add(rule)
    session.flush()
    return rule
