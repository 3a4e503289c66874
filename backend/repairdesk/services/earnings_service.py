# backend/repairdesk/services/earnings_service.py
"""
Earnings Service for the repairdesk platform.

Turns completed bookings into technician earnings and walks them through
the payout lifecycle:

    pending -> approved -> paid
    pending | approved -> held
    pending | approved -> reversed   (booking cancelled after completion)

Creation is idempotent per booking. The completed-repair counter only moves
when a row is genuinely inserted or reversed.
"""

from datetime import timedelta
from decimal import Decimal
import logging
from typing import Any, Dict, Iterable, List, Optional

from ..core.enums import RoleName
from ..core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import utc_now
from ..models.booking import Booking, BookingStatus
from ..models.earning import Earning, EarningStatus
from ..models.technician import Technician
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pricing_service import round_money

logger = logging.getLogger(__name__)

REVERSIBLE_STATUSES = (EarningStatus.PENDING.value, EarningStatus.APPROVED.value)
HOLDABLE_STATUSES = REVERSIBLE_STATUSES


class EarningsService(BaseService):
    """Commission calculation and the earning lifecycle."""

    def __init__(self, db, config=None):
        super().__init__(db, config)
        self.earning_repository = RepositoryFactory.create_earning_repository(db)
        self.technician_repository = RepositoryFactory.create_technician_repository(db)

    def get_commission_rate(self, technician: Technician) -> float:
        """
        Resolve the platform commission for a technician.

        A per-technician override wins; otherwise the highest tier whose
        threshold the technician has reached; otherwise the platform default.
        """
        if technician.commission_rate is not None:
            return float(technician.commission_rate)

        completed = technician.completed_repairs or 0
        tiers = sorted(self.settings.commission_tiers, key=lambda t: t.min_repairs, reverse=True)
        for tier in tiers:
            if completed >= tier.min_repairs:
                return tier.rate
        return self.settings.platform_commission_rate

    def split_amount(self, amount: int, rate: float) -> Dict[str, int]:
        commission = round_money(Decimal(amount) * Decimal(str(rate)))
        return {"platform_commission": commission, "net_amount": amount - commission}

    @BaseService.measure_operation("generate_earning")
    def generate_earning(
        self, booking: Booking, technician: Optional[Technician] = None
    ) -> Earning:
        """
        Create the earning for a completed booking, or return the existing one.

        Raises:
            ValidationException: booking not completed or has no cost
            NotFoundException: technician profile missing
            RepositoryException: the earning row cannot be read back
        """
        if booking.status != BookingStatus.COMPLETED.value:
            raise ValidationException("Earnings can only be generated for completed bookings")
        amount = booking.billable_amount
        if amount <= 0:
            raise ValidationException("Booking has no cost, cannot generate earnings")

        if technician is None and booking.technician_id:
            technician = self.technician_repository.get_by_id(
                booking.technician_id, load_relationships=False
            )
        if technician is None:
            raise NotFoundException("Technician not found")

        rate = self.get_commission_rate(technician)
        split = self.split_amount(amount, rate)

        with self.transaction():
            earning, created = self.earning_repository.insert_if_absent(
                booking_id=booking.id,
                technician_id=technician.id,
                technician_user_id=technician.user_id,
                gross_amount=amount,
                commission_rate=rate,
                currency=booking.currency,
                **split,
            )
            if created:
                self.technician_repository.increment_completed_repairs(technician.id)

        if created:
            self.logger.info(
                "Earning generated",
                extra={
                    "booking_id": booking.id,
                    "technician_id": technician.id,
                    "net_amount": earning.net_amount,
                    "commission_rate": rate,
                },
            )
        else:
            self.logger.info(
                "Earning already exists for booking", extra={"booking_id": booking.id}
            )
        return earning

    @BaseService.measure_operation("reverse_earning")
    def reverse_earning(self, booking_id: str) -> Optional[Earning]:
        """
        Reverse a pending or approved earning after a cancellation.

        Returns None when there is no earning or it can no longer be reversed.
        """
        existing = self.earning_repository.get_by_booking(booking_id)
        if existing is None:
            return None

        now = utc_now()
        with self.transaction():
            earning = self.earning_repository.transition(
                existing.id,
                REVERSIBLE_STATUSES,
                {
                    "status": EarningStatus.REVERSED.value,
                    "reversed_at": now,
                    "notes": f"Reversed due to booking cancellation on {now.isoformat()}",
                },
            )
            if earning is not None:
                self.technician_repository.decrement_completed_repairs(earning.technician_id)

        if earning is None:
            current = self.earning_repository.reload(existing.id)
            status = current.status if current else None
            if status == EarningStatus.PAID.value:
                self.logger.warning(
                    "Earning already paid out; requires manual handling",
                    extra={"booking_id": booking_id, "earning_id": existing.id},
                )
            else:
                self.logger.info(
                    f"Earning not reversible from status '{status}'",
                    extra={"booking_id": booking_id, "earning_id": existing.id},
                )
            return None

        self.logger.info(
            "Earning reversed", extra={"booking_id": booking_id, "earning_id": earning.id}
        )
        return earning

    def _transition_or_raise(
        self,
        earning_id: str,
        from_statuses: Iterable[str],
        values: Dict[str, Any],
        action: str,
    ) -> Earning:
        with self.transaction():
            earning = self.earning_repository.transition(earning_id, from_statuses, values)
        if earning is None:
            current = self.earning_repository.reload(earning_id)
            if current is None:
                raise NotFoundException("Earning not found")
            raise ConflictException(
                f"Cannot {action} earning with status '{current.status}'",
                details={"earning_id": earning_id, "status": current.status},
            )
        return earning

    @BaseService.measure_operation("approve_earning")
    def approve_earning(self, earning_id: str, admin: User) -> Earning:
        self.require_role(admin, RoleName.ADMIN)
        return self._transition_or_raise(
            earning_id,
            [EarningStatus.PENDING.value],
            {
                "status": EarningStatus.APPROVED.value,
                "approved_at": utc_now(),
                "approved_by_id": admin.id,
            },
            "approve",
        )

    @BaseService.measure_operation("bulk_approve")
    def bulk_approve(self, earning_ids: List[str], admin: User) -> Dict[str, List[str]]:
        """Approve every pending earning in the list; others are reported as skipped."""
        self.require_role(admin, RoleName.ADMIN)
        approved: List[str] = []
        skipped: List[str] = []
        now = utc_now()
        with self.transaction():
            for earning_id in dict.fromkeys(earning_ids):
                earning = self.earning_repository.transition(
                    earning_id,
                    [EarningStatus.PENDING.value],
                    {
                        "status": EarningStatus.APPROVED.value,
                        "approved_at": now,
                        "approved_by_id": admin.id,
                    },
                )
                (approved if earning is not None else skipped).append(earning_id)

        self.logger.info(
            "Bulk approval finished",
            extra={"approved": len(approved), "skipped": len(skipped)},
        )
        return {"approved": approved, "skipped": skipped}

    @BaseService.measure_operation("mark_paid")
    def mark_paid(
        self,
        earning_id: str,
        admin: User,
        paid_via: str,
        payout_reference: Optional[str] = None,
    ) -> Earning:
        self.require_role(admin, RoleName.ADMIN)
        if not paid_via:
            raise ValidationException("paid_via is required")
        return self._transition_or_raise(
            earning_id,
            [EarningStatus.APPROVED.value],
            {
                "status": EarningStatus.PAID.value,
                "paid_at": utc_now(),
                "paid_via": paid_via,
                "payout_reference": payout_reference,
            },
            "pay",
        )

    @BaseService.measure_operation("hold_earning")
    def hold_earning(self, earning_id: str, admin: User, reason: Optional[str] = None) -> Earning:
        self.require_role(admin, RoleName.ADMIN)
        values: Dict[str, Any] = {"status": EarningStatus.HELD.value}
        if reason:
            values["notes"] = reason
        return self._transition_or_raise(earning_id, HOLDABLE_STATUSES, values, "hold")

    @BaseService.measure_operation("get_earnings_dashboard")
    def get_earnings_dashboard(self, technician_user_id: str) -> Dict[str, Any]:
        technician = self.technician_repository.get_by_user_id(technician_user_id)
        if technician is None:
            raise NotFoundException("Technician profile not found")

        totals = self.earning_repository.totals_by_status(technician.id)
        live = {s: t for s, t in totals.items() if s != EarningStatus.REVERSED.value}

        def net(status: EarningStatus) -> int:
            return totals.get(status.value, {}).get("net", 0)

        return {
            "technician_id": technician.id,
            "commission_rate": self.get_commission_rate(technician),
            "completed_repairs": technician.completed_repairs,
            "summary": {
                "total_earnings": sum(t["net"] for t in live.values()),
                "total_commission": sum(t["commission"] for t in live.values()),
                "total_booking_amount": sum(t["gross"] for t in live.values()),
                "completed_bookings": sum(t["count"] for t in live.values()),
                "pending_payout": net(EarningStatus.PENDING),
                "approved_payout": net(EarningStatus.APPROVED),
                "paid_out": net(EarningStatus.PAID),
                "held": net(EarningStatus.HELD),
            },
            "by_status": totals,
            "monthly": self._monthly_breakdown(technician.id),
        }

    def _monthly_breakdown(self, technician_id: str, months: int = 6) -> List[Dict[str, Any]]:
        cutoff = (utc_now() - timedelta(days=31 * months)).replace(tzinfo=None)
        buckets: Dict[str, Dict[str, int]] = {}
        for earning in self.earning_repository.list_for_technician(technician_id, limit=1000):
            if earning.status == EarningStatus.REVERSED.value or earning.created_at is None:
                continue
            created = earning.created_at.replace(tzinfo=None)
            if created < cutoff:
                continue
            key = created.strftime("%Y-%m")
            bucket = buckets.setdefault(key, {"earnings": 0, "bookings": 0})
            bucket["earnings"] += earning.net_amount
            bucket["bookings"] += 1
        return [{"month": key, **buckets[key]} for key in sorted(buckets)]

    @BaseService.measure_operation("get_platform_summary")
    def get_platform_summary(self) -> Dict[str, int]:
        totals = self.earning_repository.totals_by_status()
        live = [t for s, t in totals.items() if s != EarningStatus.REVERSED.value]

        def net(*statuses: EarningStatus) -> int:
            return sum(totals.get(s.value, {}).get("net", 0) for s in statuses)

        return {
            "total_revenue": sum(t["gross"] for t in live),
            "total_commission": sum(t["commission"] for t in live),
            "total_tech_payouts": sum(t["net"] for t in live),
            "total_bookings": sum(t["count"] for t in live),
            "pending_payouts": net(EarningStatus.PENDING, EarningStatus.APPROVED),
            "paid_payouts": net(EarningStatus.PAID),
        }
