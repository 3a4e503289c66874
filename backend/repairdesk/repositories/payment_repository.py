# backend/repairdesk/repositories/payment_repository.py
"""
Payment data access.

Refund capacity is reserved and released with conditional updates so the
sum of reserved refunds can never exceed the captured amount.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, selectinload

from ..models.payment import (
    IN_FLIGHT_STATUSES,
    REFUNDABLE_STATUSES,
    Payment,
    PaymentRecordStatus,
    PaymentRefund,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[Payment]):
    def __init__(self, db: Session):
        super().__init__(db, Payment)

    def create_in_flight(self, **fields: Any) -> Optional[Payment]:
        """
        Insert a pending payment unless the booking already has one in flight.

        The partial unique index rejects the second insert; the savepoint keeps
        the surrounding transaction usable. Returns None on that conflict.
        """
        payment = Payment(status=PaymentRecordStatus.PENDING.value, **fields)
        try:
            with self.db.begin_nested():
                self.db.add(payment)
                self.db.flush()
        except IntegrityError as exc:
            self.logger.info(
                "In-flight payment already exists",
                extra={"booking_id": fields.get("booking_id"), "error": str(exc.orig)},
            )
            return None
        return payment

    def get_in_flight_for_booking(self, booking_id: str) -> Optional[Payment]:
        return self.db.scalars(
            select(Payment).where(
                Payment.booking_id == booking_id, Payment.status.in_(IN_FLIGHT_STATUSES)
            )
        ).first()

    def get_refundable_for_booking(self, booking_id: str) -> Optional[Payment]:
        """Most recent captured payment with balance left to refund."""
        return self.db.scalars(
            select(Payment)
            .where(
                Payment.booking_id == booking_id,
                Payment.status.in_(REFUNDABLE_STATUSES),
                Payment.refunded_amount < Payment.amount,
            )
            .order_by(Payment.created_at.desc(), Payment.id.desc())
        ).first()

    def list_for_booking(self, booking_id: str) -> List[Payment]:
        return list(
            self.db.scalars(
                select(Payment)
                .options(selectinload(Payment.refunds))
                .where(Payment.booking_id == booking_id)
                .order_by(Payment.created_at.desc(), Payment.id.desc())
            )
        )

    def transition(
        self,
        payment_id: str,
        from_statuses: Iterable[str],
        values: Dict[str, Any],
    ) -> Optional[Payment]:
        return self.conditional_update(
            payment_id, [Payment.status.in_(list(from_statuses))], values
        )

    def reserve_refund(self, payment_id: str, amount: int) -> Optional[Payment]:
        """
        Check-and-reserve refund capacity in one statement.

        Matches only a captured payment whose remaining balance covers
        ``amount``; status follows the new refunded total.
        """
        new_total = Payment.refunded_amount + amount
        return self.conditional_update(
            payment_id,
            [Payment.status.in_(REFUNDABLE_STATUSES), new_total <= Payment.amount],
            {
                "refunded_amount": new_total,
                "status": case(
                    (new_total >= Payment.amount, PaymentRecordStatus.REFUNDED.value),
                    else_=PaymentRecordStatus.PARTIALLY_REFUNDED.value,
                ),
            },
        )

    def release_refund(self, payment_id: str, amount: int) -> Optional[Payment]:
        """Give back capacity reserved for a refund the gateway rejected."""
        remaining = Payment.refunded_amount - amount
        return self.conditional_update(
            payment_id,
            [Payment.refunded_amount >= amount],
            {
                "refunded_amount": remaining,
                "status": case(
                    (remaining <= 0, PaymentRecordStatus.COMPLETED.value),
                    else_=PaymentRecordStatus.PARTIALLY_REFUNDED.value,
                ),
            },
        )

    def add_refund(self, payment_id: str, **fields: Any) -> PaymentRefund:
        refund = PaymentRefund(payment_id=payment_id, **fields)
        self.db.add(refund)
        self.db.flush()
        return refund

    def update_refund(self, refund: PaymentRefund, **fields: Any) -> PaymentRefund:
        for key, value in fields.items():
            setattr(refund, key, value)
        self.db.flush()
        return refund

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(selectinload(Payment.refunds))
