# backend/repairdesk/services/cancellation_service.py
"""
Cancellation saga.

Who may cancel from where:

    pending     user (owner), admin
    assigned    user (owner), admin
    in_progress admin

Only the status flip can fail the call. Refund, earning reversal and
technician release each run after it has committed; a failing step is
logged and reported as empty in the result, and never undoes earlier steps.
"""

from dataclasses import dataclass
import logging
from typing import Any, Optional

from ..core.config import Settings
from ..core.enums import RoleName
from ..core.exceptions import (
    BookingTransitionConflict,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from ..core.timezone_utils import utc_now
from ..domain.booking_state import eligible_statuses
from ..events import BookingEvent, BookingEventPublisher, BookingEventType
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.payment import PaymentRefund
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .earnings_service import EarningsService
from .payment_service import PaymentService

logger = logging.getLogger(__name__)

SAGA = "cancellation"
REFUNDABLE_BOOKING_STATUSES = (PaymentStatus.PAID.value, PaymentStatus.PARTIALLY_REFUNDED.value)


@dataclass
class CancellationResult:
    booking: Booking
    refund: Optional[PaymentRefund] = None
    earning_reversed: bool = False


class CancellationService(BaseService):
    def __init__(
        self,
        db,
        config: Optional[Settings] = None,
        publisher: Optional[BookingEventPublisher] = None,
        payment_service: Optional[PaymentService] = None,
        earnings_service: Optional[EarningsService] = None,
    ):
        super().__init__(db, config, publisher)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.technician_repository = RepositoryFactory.create_technician_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.payment_service = payment_service or PaymentService(db, self.settings)
        self.earnings_service = earnings_service or EarningsService(db, self.settings)

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, user: User, booking_id: str, reason: Optional[str] = None
    ) -> CancellationResult:
        """
        Cancel a booking and clean up its money and technician.

        Raises only for the status flip itself: NotFoundException,
        ForbiddenException or ConflictException.
        """
        allowed = eligible_statuses(user.role)
        if not allowed:
            raise ForbiddenException("Not authorized to cancel this booking")

        cancellation_reason = reason or f"Cancelled by {user.role}"
        conditions = []
        if user.role == RoleName.USER.value:
            conditions.append(Booking.user_id == user.id)

        # Step 1: the only hard-failing step
        with self.transaction():
            booking = self.booking_repository.transition(
                booking_id,
                allowed,
                {
                    "status": BookingStatus.CANCELLED.value,
                    "cancelled_at": utc_now(),
                    "cancellation_reason": cancellation_reason,
                },
                extra_conditions=conditions,
            )
            if booking is not None:
                self.booking_repository.append_status_history(
                    booking_id, BookingStatus.CANCELLED.value, user.id, note=cancellation_reason
                )
        if booking is None:
            self._raise_cancel_miss(user, booking_id)

        previous_status = self.booking_repository.previous_status(booking_id)
        prometheus_metrics.record_transition(previous_status, BookingStatus.CANCELLED.value)
        result = CancellationResult(booking=booking)
        technician_id = booking.technician_id
        context: dict[str, Any] = {"booking_id": booking_id}

        # Step 2: refund whatever was captured
        if booking.is_paid or booking.payment_status in REFUNDABLE_BOOKING_STATUSES:
            result.refund, _ = self.run_best_effort(
                SAGA,
                "refund",
                lambda: self._refund(booking_id, cancellation_reason, user),
                **context,
            )

        # Step 3: reverse the earning if it has not been paid out
        reversed_earning, _ = self.run_best_effort(
            SAGA,
            "reverse_earning",
            lambda: self.earnings_service.reverse_earning(booking_id),
            **context,
        )
        result.earning_reversed = reversed_earning is not None

        # Step 4: free the technician
        if technician_id:
            self.run_best_effort(
                SAGA,
                "release_technician",
                lambda: self._release_technician(technician_id),
                technician_id=technician_id,
                **context,
            )

        result.booking = self.booking_repository.reload(booking_id) or booking

        # Step 5: notify
        technician_user_id = None
        if technician_id:
            technician = self.technician_repository.get_by_id(
                technician_id, load_relationships=False
            )
            technician_user_id = technician.user_id if technician else None
        self.emit(
            BookingEvent(
                event_type=BookingEventType.CANCELLED,
                booking=result.booking.to_dict(),
                user_id=result.booking.user_id,
                technician_id=technician_user_id,
                changed_by=user.id,
                previous_status=previous_status,
                new_status=BookingStatus.CANCELLED.value,
            )
        )

        self.logger.info(
            "Booking cancelled",
            extra={
                "booking_id": booking_id,
                "role": user.role,
                "refunded": result.refund is not None,
                "earning_reversed": result.earning_reversed,
            },
        )
        return result

    def _raise_cancel_miss(self, user: User, booking_id: str) -> None:
        prometheus_metrics.record_transition_conflict("cancel_booking")
        current = self.booking_repository.reload(booking_id)
        if current is None:
            raise NotFoundException("Booking not found")
        if user.role == RoleName.USER.value and current.user_id != user.id:
            raise ForbiddenException("Not authorized to cancel this booking")
        if current.status == BookingStatus.CANCELLED.value:
            raise ConflictException("Booking is already cancelled", code="ALREADY_CANCELLED")
        raise BookingTransitionConflict(
            current.status,
            BookingStatus.CANCELLED.value,
            message=f"Cannot cancel a booking with status '{current.status}'",
        )

    def _refund(self, booking_id: str, reason: str, user: User) -> Optional[PaymentRefund]:
        payment = self.payment_repository.get_refundable_for_booking(booking_id)
        if payment is None:
            self.logger.warning(
                "Paid booking has no refundable payment", extra={"booking_id": booking_id}
            )
            return None

        amount = payment.refundable_balance
        if amount <= 0:
            return None
        outcome = self.payment_service.process_refund(
            payment.id,
            amount=amount,
            reason=f"Cancellation refund: {reason}",
            processed_by=user.id,
        )
        with self.transaction():
            self.booking_repository.conditional_update(
                booking_id, [], {"payment_status": PaymentStatus.REFUNDED.value}
            )
        self.logger.info(
            "Cancellation refund processed", extra={"booking_id": booking_id, "amount": amount}
        )
        return outcome.refund

    def _release_technician(self, technician_id: str) -> None:
        with self.transaction():
            self.technician_repository.set_available(technician_id, True)
