# backend/repairdesk/services/payment_service.py
"""
Payment Service for the repairdesk platform.

Gateway-agnostic payment flows. Gateway calls always happen outside a
database transaction:

- initiate: read/validate, create the gateway order, then insert the
  in-flight payment (partial unique index rejects duplicates)
- confirm: claim pending|processing -> processing, verify with the
  gateway, then settle to completed or failed
- refund: reserve capacity with one conditional update, call the
  gateway, then record the outcome or release the reservation
"""

from dataclasses import dataclass
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.enums import RoleName
from ..core.exceptions import (
    ConflictException,
    DomainException,
    ForbiddenException,
    NotFoundException,
    PaymentGatewayException,
    PaymentRequiredException,
    ValidationException,
)
from ..core.timezone_utils import utc_now
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.payment import (
    IN_FLIGHT_STATUSES,
    REFUNDABLE_STATUSES,
    Payment,
    PaymentRecordStatus,
    PaymentRefund,
    RefundStatus,
)
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .gateways import GatewayOrder, PaymentGateway, get_gateway

logger = logging.getLogger(__name__)

DUPLICATE_PAYMENT_MESSAGE = (
    "A payment is already in progress for this booking. Complete or cancel it first."
)


@dataclass
class InitiatedPayment:
    payment: Payment
    gateway_order: GatewayOrder


@dataclass
class PaymentSettlement:
    payment: Payment
    booking: Optional[Booking]


@dataclass
class RefundOutcome:
    payment: Payment
    refund: PaymentRefund
    booking: Optional[Booking]


class PaymentService(BaseService):
    """Payment initiation, confirmation and refunds over pluggable gateways."""

    def __init__(
        self,
        db: Session,
        config: Optional[Settings] = None,
        gateway_resolver=None,
    ):
        super().__init__(db, config)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self._gateway_resolver = gateway_resolver or get_gateway

    def gateway_for(self, name: Optional[str]) -> PaymentGateway:
        return self._gateway_resolver(name, self.settings)

    @BaseService.measure_operation("initiate_payment")
    def initiate_payment(
        self,
        user: User,
        booking_id: str,
        amount: Optional[int] = None,
        method: Optional[str] = None,
        gateway: Optional[str] = None,
    ) -> InitiatedPayment:
        """
        Open a payment for a booking owned by ``user``.

        Raises:
            NotFoundException, ForbiddenException, ValidationException,
            ConflictException when another payment is already in flight
        """
        # Phase 1: validate (read-only)
        booking = self.booking_repository.get_by_id(booking_id, load_relationships=False)
        if booking is None:
            raise NotFoundException("Booking not found")
        if booking.user_id != user.id:
            raise ForbiddenException("Not authorized to pay for this booking")
        if booking.payment_status == PaymentStatus.PAID.value:
            raise ValidationException("Booking is already paid", code="ALREADY_PAID")
        if booking.status == BookingStatus.CANCELLED.value:
            raise ValidationException("Cannot pay for a cancelled booking")

        charge = amount if amount is not None else booking.billable_amount
        if charge <= 0:
            raise ValidationException("Payment amount must be positive")
        if self.payment_repository.get_in_flight_for_booking(booking_id) is not None:
            raise ConflictException(DUPLICATE_PAYMENT_MESSAGE, code="PAYMENT_IN_PROGRESS")

        # Phase 2: gateway order, outside the transaction
        adapter = self.gateway_for(gateway)
        order = adapter.create_order(charge, booking.currency, booking_id)

        # Phase 3: persist
        with self.transaction():
            payment = self.payment_repository.create_in_flight(
                booking_id=booking_id,
                user_id=user.id,
                amount=charge,
                currency=booking.currency,
                method=method,
                gateway=adapter.name,
                gateway_order_id=order.order_id,
                gateway_response=order.raw or None,
            )
            if payment is None:
                raise ConflictException(DUPLICATE_PAYMENT_MESSAGE, code="PAYMENT_IN_PROGRESS")
            self.booking_repository.conditional_update(
                booking_id,
                [Booking.payment_status != PaymentStatus.PAID.value],
                {"payment_status": PaymentStatus.PENDING.value},
            )

        self.logger.info(
            "Payment initiated",
            extra={"booking_id": booking_id, "payment_id": payment.id, "gateway": adapter.name},
        )
        return InitiatedPayment(payment=payment, gateway_order=order)

    @BaseService.measure_operation("confirm_payment")
    def confirm_payment(
        self,
        payment_id: str,
        gateway_payment_id: Optional[str] = None,
        signature: Optional[str] = None,
        method: Optional[str] = None,
    ) -> PaymentSettlement:
        # Phase 1: claim the payment so concurrent confirmations lose
        with self.transaction():
            claimed = self.payment_repository.transition(
                payment_id,
                IN_FLIGHT_STATUSES,
                {"status": PaymentRecordStatus.PROCESSING.value},
            )
            if claimed is None:
                self._raise_confirm_miss(payment_id)

        # Phase 2: verify with the gateway
        adapter = self.gateway_for(claimed.gateway)
        verification = adapter.verify_payment(
            gateway_payment_id, claimed.gateway_order_id, signature
        )

        # Phase 3: settle
        if not verification.verified:
            with self.transaction():
                self.payment_repository.transition(
                    payment_id,
                    [PaymentRecordStatus.PROCESSING.value],
                    {
                        "status": PaymentRecordStatus.FAILED.value,
                        "failure_reason": "Payment verification failed",
                    },
                )
            self.logger.warning("Payment verification failed", extra={"payment_id": payment_id})
            raise PaymentRequiredException(
                "Payment verification failed", code="PAYMENT_VERIFICATION_FAILED"
            )

        with self.transaction():
            payment = self.payment_repository.transition(
                payment_id,
                [PaymentRecordStatus.PROCESSING.value],
                {
                    "status": PaymentRecordStatus.COMPLETED.value,
                    "gateway_payment_id": verification.payment_id,
                    "paid_at": utc_now(),
                    "method": method or claimed.method,
                },
            )
            if payment is None:
                raise ConflictException("Payment changed during confirmation. Please try again.")
            booking = self.booking_repository.conditional_update(
                payment.booking_id,
                [],
                {"payment_status": PaymentStatus.PAID.value, "is_paid": True},
            )

        self.logger.info(
            "Payment confirmed",
            extra={"payment_id": payment_id, "booking_id": payment.booking_id},
        )
        return PaymentSettlement(payment=payment, booking=booking)

    def _raise_confirm_miss(self, payment_id: str) -> None:
        existing = self.payment_repository.reload(payment_id)
        if existing is None:
            raise NotFoundException("Payment not found")
        if existing.status == PaymentRecordStatus.COMPLETED.value:
            raise ConflictException("Payment already completed", code="PAYMENT_ALREADY_COMPLETED")
        raise ValidationException(f"Cannot confirm payment with status '{existing.status}'")

    @BaseService.measure_operation("fail_payment")
    def fail_payment(self, payment_id: str, reason: Optional[str] = None) -> PaymentSettlement:
        """Record a gateway-reported failure for an in-flight payment."""
        with self.transaction():
            payment = self.payment_repository.transition(
                payment_id,
                IN_FLIGHT_STATUSES,
                {
                    "status": PaymentRecordStatus.FAILED.value,
                    "failure_reason": reason or "Payment failed",
                },
            )
            if payment is None:
                existing = self.payment_repository.reload(payment_id)
                if existing is None:
                    raise NotFoundException("Payment not found")
                raise ConflictException(
                    f"Cannot fail payment with status '{existing.status}'",
                    details={"status": existing.status},
                )
            booking = self.booking_repository.conditional_update(
                payment.booking_id,
                [Booking.payment_status != PaymentStatus.PAID.value],
                {"payment_status": PaymentStatus.FAILED.value},
            )
        return PaymentSettlement(payment=payment, booking=booking)

    @BaseService.measure_operation("process_refund")
    def process_refund(
        self,
        payment_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        processed_by: Optional[str] = None,
    ) -> RefundOutcome:
        """
        Refund part or all of a captured payment.

        Capacity is reserved before the gateway call, so concurrent refunds
        can never exceed the captured amount. A gateway failure releases the
        reservation and marks the refund entry failed before re-raising.
        """
        payment = self.payment_repository.reload(payment_id)
        if payment is None:
            raise NotFoundException("Payment not found")
        requested = amount if amount is not None else payment.refundable_balance
        if requested <= 0:
            raise ValidationException("Refund amount must be positive")

        # Phase 1: reserve capacity
        with self.transaction():
            reserved = self.payment_repository.reserve_refund(payment_id, requested)
            if reserved is None:
                self._raise_refund_miss(payment_id, requested)
            refund = self.payment_repository.add_refund(
                payment_id,
                amount=requested,
                reason=reason,
                status=RefundStatus.PENDING.value,
                processed_by_id=processed_by,
            )

        # Phase 2: gateway
        try:
            result = self.gateway_for(reserved.gateway).process_refund(
                reserved.gateway_payment_id, requested
            )
        except Exception as exc:
            self.logger.error(
                f"Gateway refund failed, releasing reservation: {exc}",
                extra={"payment_id": payment_id, "amount": requested},
            )
            with self.transaction():
                self.payment_repository.release_refund(payment_id, requested)
                self.payment_repository.update_refund(refund, status=RefundStatus.FAILED.value)
            if isinstance(exc, DomainException):
                raise
            raise PaymentGatewayException(
                "Refund failed at payment provider", details={"payment_id": payment_id}
            ) from exc

        # Phase 3: record outcome
        with self.transaction():
            self.payment_repository.update_refund(
                refund,
                gateway_refund_id=result.refund_id,
                status=(
                    RefundStatus.COMPLETED.value
                    if result.status == "completed"
                    else RefundStatus.PENDING.value
                ),
            )
            fully_refunded = reserved.status == PaymentRecordStatus.REFUNDED.value
            booking = self.booking_repository.conditional_update(
                reserved.booking_id,
                [],
                {
                    "payment_status": (
                        PaymentStatus.REFUNDED.value
                        if fully_refunded
                        else PaymentStatus.PARTIALLY_REFUNDED.value
                    )
                },
            )

        self.logger.info(
            "Refund processed",
            extra={"payment_id": payment_id, "amount": requested, "refund_id": result.refund_id},
        )
        return RefundOutcome(payment=reserved, refund=refund, booking=booking)

    def _raise_refund_miss(self, payment_id: str, requested: int) -> None:
        existing = self.payment_repository.reload(payment_id)
        if existing is None:
            raise NotFoundException("Payment not found")
        if existing.status not in REFUNDABLE_STATUSES:
            raise ValidationException("Can only refund completed payments")
        raise ValidationException(
            f"Refund amount {requested} exceeds refundable balance {existing.refundable_balance}",
            details={"requested": requested, "refundable": existing.refundable_balance},
        )

    @BaseService.measure_operation("get_booking_payments")
    def get_booking_payments(self, booking_id: str, user: User) -> List[Payment]:
        booking = self.booking_repository.get_by_id(booking_id, load_relationships=False)
        if booking is None:
            raise NotFoundException("Booking not found")
        if user.role != RoleName.ADMIN.value and booking.user_id != user.id:
            raise ForbiddenException("Not authorized to view payments for this booking")
        return self.payment_repository.list_for_booking(booking_id)
