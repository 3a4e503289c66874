# backend/repairdesk/repositories/booking_repository.py
"""
Booking Repository for the repairdesk platform.

This repository handles:
- Booking CRUD and eager loading of history
- Conditional status transitions (one winner per race)
- Status and reschedule history appends
- Technician schedule conflict queries
- Filtered listing for owners, technicians and admins
"""

from datetime import date
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, selectinload

from ..core.exceptions import RepositoryException
from ..models.booking import (
    Booking,
    BookingRescheduleHistory,
    BookingStatus,
    BookingStatusHistory,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

ACTIVE_WORK_STATUSES = (BookingStatus.ASSIGNED.value, BookingStatus.IN_PROGRESS.value)


class BookingRepository(BaseRepository[Booking]):
    """Data access for bookings and their history tables."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def transition(
        self,
        booking_id: str,
        from_statuses: Iterable[str],
        values: Dict[str, Any],
        extra_conditions: Sequence[Any] = (),
    ) -> Optional[Booking]:
        """
        Move a booking out of one of ``from_statuses`` in a single UPDATE.

        ``extra_conditions`` carry the remaining preconditions (technician
        identity, payment status, ownership). None means no row matched.
        """
        allowed = [str(getattr(s, "value", s)) for s in from_statuses]
        conditions = [Booking.status.in_(allowed), *extra_conditions]
        return self.conditional_update(booking_id, conditions, values)

    def append_status_history(
        self,
        booking_id: str,
        status: str,
        changed_by_id: Optional[str],
        note: Optional[str] = None,
    ) -> BookingStatusHistory:
        entry = BookingStatusHistory(
            booking_id=booking_id, status=status, changed_by_id=changed_by_id, note=note
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def append_reschedule_history(self, booking_id: str, **fields: Any) -> BookingRescheduleHistory:
        entry = BookingRescheduleHistory(booking_id=booking_id, **fields)
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_status_history(self, booking_id: str) -> List[BookingStatusHistory]:
        return list(
            self.db.scalars(
                select(BookingStatusHistory)
                .where(BookingStatusHistory.booking_id == booking_id)
                .order_by(BookingStatusHistory.id.asc())
            )
        )

    def get_reschedule_history(self, booking_id: str) -> List[BookingRescheduleHistory]:
        return list(
            self.db.scalars(
                select(BookingRescheduleHistory)
                .where(BookingRescheduleHistory.booking_id == booking_id)
                .order_by(BookingRescheduleHistory.id.asc())
            )
        )

    def previous_status(self, booking_id: str) -> Optional[str]:
        """Status recorded just before the latest history entry, if any."""
        history = self.get_status_history(booking_id)
        if len(history) < 2:
            return None
        return history[-2].status

    def technician_has_conflict(
        self,
        technician_id: str,
        on_date: date,
        time_slot: Optional[str],
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """True when the technician already holds active work for the date/slot."""
        return technician_id in self.busy_technician_ids(on_date, time_slot, exclude_booking_id)

    def busy_technician_ids(
        self,
        on_date: date,
        time_slot: Optional[str] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> Set[str]:
        try:
            stmt = select(Booking.technician_id).where(
                Booking.technician_id.is_not(None),
                Booking.preferred_date == on_date,
                Booking.status.in_(ACTIVE_WORK_STATUSES),
            )
            if time_slot:
                stmt = stmt.where(Booking.preferred_time_slot == time_slot)
            if exclude_booking_id:
                stmt = stmt.where(Booking.id != exclude_booking_id)
            return {row for row in self.db.scalars(stmt) if row}
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking technician schedule: {str(e)}")
            raise RepositoryException(f"Failed to check technician schedule: {str(e)}")

    def list_bookings(
        self,
        *,
        user_id: Optional[str] = None,
        technician_id: Optional[str] = None,
        status: Optional[str] = None,
        service_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[List[Booking], int]:
        """Return one page of bookings, newest first, plus the total match count."""
        query = self.db.query(Booking)
        if user_id:
            query = query.filter(Booking.user_id == user_id)
        if technician_id:
            query = query.filter(Booking.technician_id == technician_id)
        if status:
            query = query.filter(Booking.status == status)
        if service_type:
            query = query.filter(func.lower(Booking.service_type) == service_type.lower())

        try:
            total = query.count()
            rows = (
                query.order_by(Booking.created_at.desc(), Booking.id.desc())
                .offset(skip)
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bookings: {str(e)}")
            raise RepositoryException(f"Failed to list bookings: {str(e)}")
        return rows, total

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            selectinload(Booking.status_history),
            selectinload(Booking.reschedule_history),
        )
