# backend/repairdesk/services/dependencies.py
"""
Dependency injection functions for services.

The HTTP layer wires these with FastAPI's ``Depends``:

    booking_service: BookingService = Depends(get_booking_service)

One event bus exists per process and is handed to every orchestration
service; notification and real-time consumers subscribe to it at startup.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..events import InProcessEventBus
from .booking_service import BookingService
from .cancellation_service import CancellationService
from .earnings_service import EarningsService
from .payment_service import PaymentService
from .pricing_service import PricingService
from .reschedule_service import RescheduleService
from .technician_matcher import TechnicianMatcher
from .technician_service import TechnicianService


@lru_cache(maxsize=1)
def get_event_bus() -> InProcessEventBus:
    return InProcessEventBus()


def get_pricing_service(db: Session = Depends(get_db)) -> PricingService:
    return PricingService(db)


def get_technician_matcher(db: Session = Depends(get_db)) -> TechnicianMatcher:
    return TechnicianMatcher(db)


def get_earnings_service(db: Session = Depends(get_db)) -> EarningsService:
    return EarningsService(db)


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


def get_technician_service(db: Session = Depends(get_db)) -> TechnicianService:
    return TechnicianService(db)


def get_booking_service(
    db: Session = Depends(get_db),
    bus: InProcessEventBus = Depends(get_event_bus),
    pricing_service: PricingService = Depends(get_pricing_service),
    matcher: TechnicianMatcher = Depends(get_technician_matcher),
    earnings_service: EarningsService = Depends(get_earnings_service),
) -> BookingService:
    """
    Dependency injection function for BookingService.

    Usage in routes:
        booking_service: BookingService = Depends(get_booking_service)
    """
    return BookingService(
        db,
        publisher=bus,
        pricing_service=pricing_service,
        matcher=matcher,
        earnings_service=earnings_service,
    )


def get_cancellation_service(
    db: Session = Depends(get_db),
    bus: InProcessEventBus = Depends(get_event_bus),
    payment_service: PaymentService = Depends(get_payment_service),
    earnings_service: EarningsService = Depends(get_earnings_service),
) -> CancellationService:
    return CancellationService(
        db, publisher=bus, payment_service=payment_service, earnings_service=earnings_service
    )


def get_reschedule_service(
    db: Session = Depends(get_db),
    bus: InProcessEventBus = Depends(get_event_bus),
    pricing_service: PricingService = Depends(get_pricing_service),
    matcher: TechnicianMatcher = Depends(get_technician_matcher),
) -> RescheduleService:
    return RescheduleService(db, publisher=bus, pricing_service=pricing_service, matcher=matcher)
