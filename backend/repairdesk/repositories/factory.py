# backend/repairdesk/repositories/factory.py
"""
Repository Factory for the repairdesk platform.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .earning_repository import EarningRepository
    from .payment_repository import PaymentRepository
    from .pricing_rule_repository import PricingRuleRepository
    from .technician_repository import TechnicianRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_technician_repository(db: Session) -> "TechnicianRepository":
        from .technician_repository import TechnicianRepository

        return TechnicianRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_earning_repository(db: Session) -> "EarningRepository":
        from .earning_repository import EarningRepository

        return EarningRepository(db)

    @staticmethod
    def create_pricing_rule_repository(db: Session) -> "PricingRuleRepository":
        from .pricing_rule_repository import PricingRuleRepository

        return PricingRuleRepository(db)
