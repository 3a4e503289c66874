# backend/repairdesk/services/booking_service.py
"""
Booking Service for the repairdesk platform.

Orchestrates the booking lifecycle:

    pending -> assigned -> in_progress -> completed
    pending | assigned | in_progress -> cancelled

Every transition is one conditional UPDATE whose WHERE clause carries all
of its preconditions. When it matches nothing, the booking is re-read once
and the miss is classified in a fixed order: existence, then caller
identity, then payment, then a generic status conflict.

Side effects that run after a committed transition (earnings) never undo
it; their outcome is reported in the result object.
"""

from dataclasses import dataclass
import logging
from typing import Any, List, Optional, Tuple

from ..core.config import Settings
from ..core.enums import RoleName
from ..core.exceptions import (
    BookingTransitionConflict,
    ForbiddenException,
    NotFoundException,
    PaymentRequiredException,
    TechnicianAlreadyAssignedException,
    ValidationException,
)
from ..core.timezone_utils import get_platform_today, utc_now
from ..domain.booking_state import is_valid_status, sources_for
from ..events import BookingEvent, BookingEventPublisher, BookingEventType
from ..models.booking import Booking, BookingStatus, PaymentStatus
from ..models.earning import Earning
from ..models.technician import Technician, VerificationStatus
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingCreate, BookingListParams
from ..schemas.pricing import PriceQuote
from .base import BaseService
from .earnings_service import EarningsService
from .pricing_service import PricingService
from .technician_matcher import TechnicianMatcher

logger = logging.getLogger(__name__)

AUTO_ASSIGN_NOTE = "Auto-assigned by matching engine"


@dataclass
class BookingCreationResult:
    booking: Booking
    auto_assigned: bool
    quote: PriceQuote


@dataclass
class CompletionResult:
    booking: Booking
    earning: Optional[Earning]


class BookingService(BaseService):
    """
    Service layer for booking operations.

    Handles creation with pricing and auto-assignment, admin assignment,
    start and completion by the assigned technician, and admin status
    overrides validated against the transition table.
    """

    def __init__(
        self,
        db,
        config: Optional[Settings] = None,
        publisher: Optional[BookingEventPublisher] = None,
        pricing_service: Optional[PricingService] = None,
        matcher: Optional[TechnicianMatcher] = None,
        earnings_service: Optional[EarningsService] = None,
    ):
        super().__init__(db, config, publisher)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.technician_repository = RepositoryFactory.create_technician_repository(db)
        self.pricing_service = pricing_service or PricingService(db, self.settings)
        self.matcher = matcher or TechnicianMatcher(db, self.settings)
        self.earnings_service = earnings_service or EarningsService(db, self.settings)

    # Helpers

    def _technician_profile(self, user: User) -> Technician:
        technician = self.technician_repository.get_by_user_id(user.id)
        if technician is None:
            raise ForbiddenException("Technician profile not found")
        return technician

    def _technician_user_id(self, technician_id: Optional[str]) -> Optional[str]:
        if not technician_id:
            return None
        technician = self.technician_repository.get_by_id(technician_id, load_relationships=False)
        return technician.user_id if technician else None

    def _publish(
        self,
        event_type: BookingEventType,
        booking: Booking,
        changed_by: Optional[str],
        previous_status: Optional[str],
        new_status: Optional[str] = None,
    ) -> None:
        self.emit(
            BookingEvent(
                event_type=event_type,
                booking=booking.to_dict(),
                user_id=booking.user_id,
                technician_id=self._technician_user_id(booking.technician_id),
                changed_by=changed_by,
                previous_status=previous_status,
                new_status=new_status or booking.status,
            )
        )

    def _raise_transition_miss(
        self,
        booking_id: str,
        operation: str,
        target: BookingStatus,
        technician_id: Optional[str] = None,
        require_paid: bool = False,
    ) -> None:
        prometheus_metrics.record_transition_conflict(operation)
        current = self.booking_repository.reload(booking_id)
        if current is None:
            raise NotFoundException("Booking not found")
        if technician_id is not None and current.technician_id != technician_id:
            raise ForbiddenException("You are not assigned to this booking")
        if require_paid and current.payment_status != PaymentStatus.PAID.value:
            raise PaymentRequiredException(
                "Booking must be paid before work can start",
                code="PAYMENT_REQUIRED",
                details={"payment_status": current.payment_status},
            )
        raise BookingTransitionConflict(current.status, target.value)

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(self, user: User, data: BookingCreate) -> BookingCreationResult:
        """
        Create a booking, pricing it and trying to auto-assign a technician.

        Raises:
            ValidationException: preferred date is not in the future
        """
        today = get_platform_today(self.settings)
        if data.preferred_date <= today:
            raise ValidationException(
                "Preferred date must be in the future",
                details={"preferred_date": data.preferred_date.isoformat(), "today": today.isoformat()},
            )

        quote = self.pricing_service.calculate_price(data.service_type, data.issue_type, data.urgency)

        location = (data.location.lat, data.location.lng) if data.location else None
        match, _ = self.run_best_effort(
            "create_booking",
            "auto_match",
            lambda: self.matcher.find_best_match(
                data.service_type,
                location=location,
                on_date=data.preferred_date,
                time_slot=data.preferred_time_slot,
            ),
            service_type=data.service_type,
        )

        status = BookingStatus.ASSIGNED if match is not None else BookingStatus.PENDING
        with self.transaction():
            booking = self.booking_repository.create(
                user_id=user.id,
                technician_id=match.id if match is not None else None,
                service_type=data.service_type,
                issue_type=data.issue_type,
                urgency=data.urgency,
                description=data.description,
                device_info=data.device_info.model_dump() if data.device_info else None,
                address=data.address.model_dump() if data.address else None,
                location_lat=location[0] if location else None,
                location_lng=location[1] if location else None,
                preferred_date=data.preferred_date,
                preferred_time_slot=data.preferred_time_slot,
                notes=data.notes,
                status=status.value,
                payment_status=PaymentStatus.PENDING.value,
                estimated_cost=quote.estimated_cost,
                currency=quote.currency,
                pricing_breakdown=quote.snapshot(),
            )
            self.booking_repository.append_status_history(
                booking.id, BookingStatus.PENDING.value, user.id
            )
            if match is not None:
                self.booking_repository.append_status_history(
                    booking.id, BookingStatus.ASSIGNED.value, user.id, note=AUTO_ASSIGN_NOTE
                )

        prometheus_metrics.record_transition(None, BookingStatus.PENDING.value)
        if match is not None:
            prometheus_metrics.record_transition(
                BookingStatus.PENDING.value, BookingStatus.ASSIGNED.value
            )

        self.logger.info(
            "Booking created",
            extra={
                "booking_id": booking.id,
                "user_id": user.id,
                "status": booking.status,
                "auto_assigned": match is not None,
            },
        )
        self._publish(BookingEventType.CREATED, booking, user.id, None)
        return BookingCreationResult(booking=booking, auto_assigned=match is not None, quote=quote)

    # Technician work

    @BaseService.measure_operation("start_booking")
    def start_booking(self, user: User, booking_id: str) -> Booking:
        """Move an assigned, paid booking to in_progress for its technician."""
        technician = self._technician_profile(user)

        with self.transaction():
            booking = self.booking_repository.transition(
                booking_id,
                [BookingStatus.ASSIGNED],
                {"status": BookingStatus.IN_PROGRESS.value, "started_at": utc_now()},
                extra_conditions=[
                    Booking.technician_id == technician.id,
                    Booking.payment_status == PaymentStatus.PAID.value,
                ],
            )
            if booking is not None:
                self.booking_repository.append_status_history(
                    booking_id, BookingStatus.IN_PROGRESS.value, user.id
                )

        if booking is None:
            self._raise_transition_miss(
                booking_id,
                "start_booking",
                BookingStatus.IN_PROGRESS,
                technician_id=technician.id,
                require_paid=True,
            )

        prometheus_metrics.record_transition(
            BookingStatus.ASSIGNED.value, BookingStatus.IN_PROGRESS.value
        )
        self.log_operation("start_booking", booking_id=booking_id, technician_id=technician.id)
        self._publish(BookingEventType.STARTED, booking, user.id, BookingStatus.ASSIGNED.value)
        return booking

    @BaseService.measure_operation("complete_booking")
    def complete_booking(
        self,
        user: User,
        booking_id: str,
        final_cost: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> CompletionResult:
        """
        Complete an in-progress booking and generate the technician's earning.

        The assigned technician or an admin may complete. Earning generation
        runs after the commit; if it fails the completion stands and the
        result carries ``earning=None``.
        """
        technician_id: Optional[str] = None
        if user.role != RoleName.ADMIN.value:
            self.require_role(user, RoleName.TECHNICIAN)
            technician_id = self._technician_profile(user).id
        if final_cost is not None and final_cost < 0:
            raise ValidationException("Final cost cannot be negative")

        values: dict[str, Any] = {
            "status": BookingStatus.COMPLETED.value,
            "completed_at": utc_now(),
        }
        if final_cost is not None:
            values["final_cost"] = final_cost
        if notes:
            values["notes"] = notes
        conditions = [Booking.technician_id == technician_id] if technician_id else []

        with self.transaction():
            booking = self.booking_repository.transition(
                booking_id, [BookingStatus.IN_PROGRESS], values, extra_conditions=conditions
            )
            if booking is not None:
                self.booking_repository.append_status_history(
                    booking_id, BookingStatus.COMPLETED.value, user.id, note=notes
                )

        if booking is None:
            self._raise_transition_miss(
                booking_id, "complete_booking", BookingStatus.COMPLETED, technician_id=technician_id
            )

        prometheus_metrics.record_transition(
            BookingStatus.IN_PROGRESS.value, BookingStatus.COMPLETED.value
        )
        self.log_operation("complete_booking", booking_id=booking_id, completed_by=user.id)
        self._publish(BookingEventType.COMPLETED, booking, user.id, BookingStatus.IN_PROGRESS.value)

        earning = self._generate_earning(booking)
        return CompletionResult(booking=booking, earning=earning)

    def _generate_earning(self, booking: Booking) -> Optional[Earning]:
        earning, _ = self.run_best_effort(
            "completion",
            "generate_earning",
            lambda: self.earnings_service.generate_earning(booking),
            booking_id=booking.id,
        )
        return earning

    # Admin operations

    @BaseService.measure_operation("assign_technician")
    def assign_technician(self, admin: User, booking_id: str, technician_id: str) -> Booking:
        """
        Assign a verified, available technician to a pending booking.

        The technician's availability flag is left as is.
        """
        self.require_role(admin, RoleName.ADMIN)

        technician = self.technician_repository.get_by_id(technician_id, load_relationships=False)
        if technician is None:
            raise NotFoundException("Technician not found")
        if not technician.is_available:
            raise ValidationException("Technician is not available")
        if technician.verification_status != VerificationStatus.APPROVED.value:
            raise ValidationException("Technician is not verified")

        with self.transaction():
            booking = self.booking_repository.transition(
                booking_id,
                [BookingStatus.PENDING],
                {"status": BookingStatus.ASSIGNED.value, "technician_id": technician.id},
                extra_conditions=[Booking.technician_id.is_(None)],
            )
            if booking is not None:
                self.booking_repository.append_status_history(
                    booking_id, BookingStatus.ASSIGNED.value, admin.id, note="Assigned by admin"
                )

        if booking is None:
            prometheus_metrics.record_transition_conflict("assign_technician")
            current = self.booking_repository.reload(booking_id)
            if current is None:
                raise NotFoundException("Booking not found")
            if current.technician_id is not None:
                raise TechnicianAlreadyAssignedException(booking_id, current.technician_id)
            raise BookingTransitionConflict(current.status, BookingStatus.ASSIGNED.value)

        prometheus_metrics.record_transition(
            BookingStatus.PENDING.value, BookingStatus.ASSIGNED.value
        )
        self.logger.info(
            "Technician assigned",
            extra={"booking_id": booking_id, "technician_id": technician.id, "admin_id": admin.id},
        )
        self._publish(BookingEventType.ASSIGNED, booking, admin.id, BookingStatus.PENDING.value)
        return booking

    @BaseService.measure_operation("update_status")
    def update_status(
        self,
        admin: User,
        booking_id: str,
        status: str,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Force a booking into ``status`` from any source the admin may use.

        The target is rejected up front when no edge in the transition table
        lets an admin reach it. ``assigned`` is also rejected up front: the
        only admin source is ``pending``, which never carries a technician, so
        assignment goes through assign_technician. Forcing ``cancelled`` does
        not run the refund saga; use CancellationService for that.
        """
        self.require_role(admin, RoleName.ADMIN)
        status = str(getattr(status, "value", status))
        if not is_valid_status(status):
            raise ValidationException(f"Invalid status: {status}")

        target = BookingStatus(status)
        sources = sources_for(target, RoleName.ADMIN)
        if not sources:
            raise ValidationException(
                f"Admin cannot move a booking to '{status}'",
                details={"target_status": status},
            )
        if target == BookingStatus.ASSIGNED:
            raise ValidationException(
                "Use assign_technician to put a technician on a booking",
                code="USE_ASSIGN_TECHNICIAN",
                details={"target_status": status},
            )

        now = utc_now()
        values: dict[str, Any] = {"status": status}
        if target == BookingStatus.COMPLETED:
            values["completed_at"] = now
        elif target == BookingStatus.CANCELLED:
            values["cancelled_at"] = now
            values["cancellation_reason"] = reason or "Cancelled by admin"

        with self.transaction():
            booking = self.booking_repository.transition(booking_id, sources, values)
            if booking is not None:
                self.booking_repository.append_status_history(
                    booking_id, status, admin.id, note=reason
                )

        if booking is None:
            prometheus_metrics.record_transition_conflict("update_status")
            current = self.booking_repository.reload(booking_id)
            if current is None:
                raise NotFoundException("Booking not found")
            valid_from = sorted(s.value for s in sources)
            raise BookingTransitionConflict(
                current.status,
                status,
                message=(
                    f"Cannot change status from '{current.status}' to '{status}'. "
                    f"Valid source statuses: {', '.join(valid_from)}"
                ),
            )

        previous_status = self.booking_repository.previous_status(booking_id)
        prometheus_metrics.record_transition(previous_status, status)
        self.logger.info(
            "Booking status forced by admin",
            extra={"booking_id": booking_id, "from_status": previous_status, "to_status": status},
        )
        self._publish(BookingEventType.STATUS_CHANGED, booking, admin.id, previous_status)

        if target == BookingStatus.COMPLETED:
            self._generate_earning(booking)
        return booking

    # Queries

    @BaseService.measure_operation("get_booking_for_user")
    def get_booking_for_user(self, user: User, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if user.role == RoleName.ADMIN.value or booking.user_id == user.id:
            return booking
        if user.role == RoleName.TECHNICIAN.value and booking.technician_id:
            technician = self.technician_repository.get_by_user_id(user.id)
            if technician is not None and technician.id == booking.technician_id:
                return booking
        raise ForbiddenException("Not authorized to view this booking")

    @BaseService.measure_operation("list_bookings")
    def list_bookings(
        self, user: User, params: Optional[BookingListParams] = None
    ) -> Tuple[List[Booking], int]:
        """Bookings visible to the caller: all for admins, own work for technicians."""
        params = params or BookingListParams()
        filters: dict[str, Any] = {
            "status": params.status,
            "service_type": params.service_type,
            "skip": params.skip,
            "limit": params.limit,
        }
        if user.role == RoleName.TECHNICIAN.value:
            filters["technician_id"] = self._technician_profile(user).id
        elif user.role != RoleName.ADMIN.value:
            filters["user_id"] = user.id
        return self.booking_repository.list_bookings(**filters)
