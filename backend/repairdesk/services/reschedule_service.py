# backend/repairdesk/services/reschedule_service.py
"""
Reschedule saga.

Eligibility matches cancellation: owners from pending or assigned, admins
additionally from in_progress. A booking can be moved at most
``settings.max_reschedules`` times.

If the assigned technician already has active work at the new date/slot
a replacement is matched; when none exists the whole reschedule fails
with a 409. Price revalidation is best-effort.
"""

from dataclasses import dataclass
from datetime import date
import logging
from typing import Any, Dict, Optional

from ..core.config import Settings
from ..core.enums import RoleName
from ..core.exceptions import (
    BookingTransitionConflict,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import get_platform_today, parse_date
from ..domain.booking_state import eligible_statuses
from ..events import BookingEvent, BookingEventPublisher, BookingEventType
from ..models.booking import Booking, BookingStatus
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pricing_service import PricingService
from .technician_matcher import TechnicianMatcher

logger = logging.getLogger(__name__)

SAGA = "reschedule"
NO_TECHNICIAN_MESSAGE = (
    "No technicians available for the new date/time. Please choose a different slot."
)
STATUS_CHANGED_MESSAGE = "Booking status changed during reschedule. Please try again."


@dataclass
class RescheduleResult:
    booking: Booking
    technician_reassigned: bool = False
    price_changed: bool = False


class RescheduleService(BaseService):
    def __init__(
        self,
        db,
        config: Optional[Settings] = None,
        publisher: Optional[BookingEventPublisher] = None,
        pricing_service: Optional[PricingService] = None,
        matcher: Optional[TechnicianMatcher] = None,
    ):
        super().__init__(db, config, publisher)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.technician_repository = RepositoryFactory.create_technician_repository(db)
        self.pricing_service = pricing_service or PricingService(db, self.settings)
        self.matcher = matcher or TechnicianMatcher(db, self.settings)

    def _cap_error(self) -> ValidationException:
        limit = self.settings.max_reschedules
        return ValidationException(
            f"Maximum reschedule limit ({limit}) reached. "
            "Please cancel and create a new booking.",
            code="RESCHEDULE_LIMIT_REACHED",
            details={"max_reschedules": limit},
        )

    @BaseService.measure_operation("reschedule_booking")
    def reschedule_booking(
        self,
        user: User,
        booking_id: str,
        new_date: Any,
        new_time_slot: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> RescheduleResult:
        """
        Move a booking to a new date and optionally a new time slot.

        Args:
            new_date: date, datetime or YYYY-MM-DD string; must be after today
                in the platform timezone
            new_time_slot: keeps the current slot when omitted
            reason: free text recorded in the reschedule history

        Raises:
            ValidationException: bad date or reschedule cap reached
            NotFoundException, ForbiddenException
            ConflictException: ineligible status, no replacement technician,
                or the booking changed concurrently
        """
        target_date = parse_date(new_date)
        if target_date is None:
            raise ValidationException("Invalid date provided")
        if target_date <= get_platform_today(self.settings):
            raise ValidationException("Reschedule date must be in the future")

        allowed = eligible_statuses(user.role)
        if not allowed:
            raise ForbiddenException("Not authorized to reschedule this booking")
        new_time_slot = str(getattr(new_time_slot, "value", new_time_slot)) if new_time_slot else None

        # Phase 1: read and validate
        booking = self.booking_repository.reload(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        if user.role == RoleName.USER.value and booking.user_id != user.id:
            raise ForbiddenException("Not authorized to reschedule this booking")
        if booking.status not in {s.value for s in allowed}:
            raise BookingTransitionConflict(
                booking.status,
                booking.status,
                message=f"Cannot reschedule a booking with status '{booking.status}'",
            )
        reschedule_count = booking.reschedule_count or 0
        if reschedule_count >= self.settings.max_reschedules:
            raise self._cap_error()

        original_status = booking.status
        original_technician_id = booking.technician_id
        from_date, from_slot = booking.preferred_date, booking.preferred_time_slot
        to_slot = new_time_slot or from_slot

        # Phase 2: price revalidation (best-effort) and technician conflict
        updates: Dict[str, Any] = {
            "preferred_date": target_date,
            "preferred_time_slot": to_slot,
            "reschedule_count": Booking.reschedule_count + 1,
        }
        price_changed = self._revalidate_price(booking, updates)

        replacement_id = self._resolve_technician(booking, target_date, new_time_slot, to_slot)
        if replacement_id is not None:
            updates["technician_id"] = replacement_id

        # Phase 3: apply
        note = f"Rescheduled to {target_date.isoformat()}"
        if new_time_slot:
            note += f" ({new_time_slot})"
        if reason:
            note += f": {reason}"

        conditions = [Booking.reschedule_count < self.settings.max_reschedules]
        if user.role == RoleName.USER.value:
            conditions.append(Booking.user_id == user.id)
        if original_technician_id:
            conditions.append(Booking.technician_id == original_technician_id)

        with self.transaction():
            updated = self.booking_repository.transition(
                booking_id, allowed, updates, extra_conditions=conditions
            )
            if updated is not None:
                self.booking_repository.append_status_history(
                    booking_id, updated.status, user.id, note=note
                )
                self.booking_repository.append_reschedule_history(
                    booking_id,
                    from_date=from_date,
                    from_time_slot=from_slot,
                    to_date=target_date,
                    to_time_slot=to_slot,
                    reason=reason or "Not specified",
                    rescheduled_by_id=user.id,
                )

        if updated is None:
            current = self.booking_repository.reload(booking_id)
            if current is not None and (current.reschedule_count or 0) >= self.settings.max_reschedules:
                raise self._cap_error()
            raise ConflictException(STATUS_CHANGED_MESSAGE, code="BOOKING_CHANGED")

        if replacement_id is not None and original_technician_id:
            self.run_best_effort(
                SAGA,
                "release_technician",
                lambda: self._release_technician(original_technician_id),
                booking_id=booking_id,
                technician_id=original_technician_id,
            )
            updated = self.booking_repository.reload(booking_id) or updated

        technician_user_id = None
        if updated.technician_id:
            technician = self.technician_repository.get_by_id(
                updated.technician_id, load_relationships=False
            )
            technician_user_id = technician.user_id if technician else None
        self.emit(
            BookingEvent(
                event_type=BookingEventType.STATUS_CHANGED,
                booking=updated.to_dict(),
                user_id=updated.user_id,
                technician_id=technician_user_id,
                changed_by=user.id,
                previous_status=original_status,
                new_status=f"rescheduled ({original_status})",
            )
        )

        self.logger.info(
            "Booking rescheduled",
            extra={
                "booking_id": booking_id,
                "old_date": from_date.isoformat() if from_date else None,
                "new_date": target_date.isoformat(),
                "price_changed": price_changed,
                "technician_reassigned": replacement_id is not None,
                "reschedule_count": updated.reschedule_count,
            },
        )
        return RescheduleResult(
            booking=updated,
            technician_reassigned=replacement_id is not None,
            price_changed=price_changed,
        )

    def _revalidate_price(self, booking: Booking, updates: Dict[str, Any]) -> bool:
        quote, _ = self.run_best_effort(
            SAGA,
            "revalidate_price",
            lambda: self.pricing_service.calculate_price(
                booking.service_type, booking.issue_type, booking.urgency
            ),
            booking_id=booking.id,
        )
        if quote is None or quote.estimated_cost == booking.estimated_cost:
            return False
        updates["estimated_cost"] = quote.estimated_cost
        updates["pricing_breakdown"] = quote.snapshot()
        return True

    def _resolve_technician(
        self,
        booking: Booking,
        target_date: date,
        requested_slot: Optional[str],
        to_slot: str,
    ) -> Optional[str]:
        """
        Replacement technician id when the current one is busy, else None.

        Raises ConflictException when a replacement is needed but none exists.
        """
        if booking.status != BookingStatus.ASSIGNED.value or not booking.technician_id:
            return None
        busy = self.booking_repository.technician_has_conflict(
            booking.technician_id, target_date, requested_slot, exclude_booking_id=booking.id
        )
        if not busy:
            return None

        location = None
        if booking.location_lat is not None and booking.location_lng is not None:
            location = (booking.location_lat, booking.location_lng)
        replacement = self.matcher.find_best_match(
            booking.service_type,
            location=location,
            exclude_ids=[booking.technician_id],
            on_date=target_date,
            time_slot=to_slot,
            exclude_booking_id=booking.id,
        )
        if replacement is None:
            raise ConflictException(NO_TECHNICIAN_MESSAGE, code="NO_TECHNICIAN_AVAILABLE")
        self.logger.info(
            "Technician reassigned for reschedule",
            extra={
                "booking_id": booking.id,
                "from_technician": booking.technician_id,
                "to_technician": replacement.id,
            },
        )
        return replacement.id

    def _release_technician(self, technician_id: str) -> None:
        with self.transaction():
            self.technician_repository.set_available(technician_id, True)
