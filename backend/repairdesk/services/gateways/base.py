"""
Payment gateway adapter contract.

Every provider implements create_order, verify_payment and process_refund
over whole-currency-unit amounts; adapters convert to provider units.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class GatewayOrder:
    order_id: str
    amount: int
    currency: str
    status: str = "created"
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentVerification:
    verified: bool
    payment_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayRefund:
    refund_id: str
    amount: int
    status: str  # "completed" or "pending"
    raw: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """A payment provider adapter."""

    name: str = ""

    @abstractmethod
    def create_order(self, amount: int, currency: str, booking_ref: str) -> GatewayOrder:
        """Open an order the customer will pay against."""

    @abstractmethod
    def verify_payment(
        self,
        payment_ref: Optional[str],
        order_ref: Optional[str],
        signature: Optional[str],
    ) -> PaymentVerification:
        """Confirm with the provider that the order was paid."""

    @abstractmethod
    def process_refund(self, payment_ref: Optional[str], amount: int) -> GatewayRefund:
        """Refund part or all of a captured payment."""

    @staticmethod
    def to_minor_units(amount: int) -> int:
        return int(amount) * 100
