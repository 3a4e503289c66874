# backend/repairdesk/repositories/__init__.py
"""
Repository Pattern Implementation for the repairdesk platform.

Key Components:
- BaseRepository: generic CRUD plus conditional_update
- RepositoryFactory: factory for creating repository instances
- BookingRepository: transitions, history and schedule queries
- TechnicianRepository: eligibility queries and atomic counters
- PaymentRepository: in-flight guard and refund capacity reservation
- EarningRepository: idempotent insert and aggregates
- PricingRuleRepository: active rule lookup

Usage:
    from repairdesk.repositories import RepositoryFactory

    repository = RepositoryFactory.create_booking_repository(db)
    booking = repository.transition(booking_id, ["assigned"], {"status": "in_progress"})
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .earning_repository import EarningRepository
from .factory import RepositoryFactory
from .payment_repository import PaymentRepository
from .pricing_rule_repository import PricingRuleRepository
from .technician_repository import TechnicianRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "EarningRepository",
    "PaymentRepository",
    "PricingRuleRepository",
    "RepositoryFactory",
    "TechnicianRepository",
]
