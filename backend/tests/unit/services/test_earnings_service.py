# backend/tests/unit/services/test_earnings_service.py
"""
Earnings engine tests.

Covers tiered commission, idempotent generation keyed by booking, reversal
rules and the admin payout lifecycle.
"""

from unittest.mock import patch

from sqlalchemy import func, select
import pytest

from repairdesk.core.enums import RoleName
from repairdesk.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from repairdesk.models.booking import BookingStatus
from repairdesk.models.earning import Earning, EarningStatus
from repairdesk.services.earnings_service import EarningsService
from tests.factories.builders import make_booking, make_earning, make_technician, make_user

pytestmark = pytest.mark.unit


@pytest.fixture
def service(unit_db, test_settings):
    return EarningsService(unit_db, test_settings)


@pytest.fixture
def technician(unit_db):
    return make_technician(unit_db)


@pytest.fixture
def admin(unit_db):
    return make_user(unit_db, RoleName.ADMIN)


@pytest.fixture
def completed_booking(unit_db, technician):
    owner = make_user(unit_db)
    return make_booking(
        unit_db,
        owner,
        status=BookingStatus.COMPLETED,
        technician=technician,
        paid=True,
        estimated_cost=1000,
        final_cost=1200,
    )


def _earning_count(db, booking_id):
    return db.scalar(select(func.count(Earning.id)).where(Earning.booking_id == booking_id))


class TestCommissionRate:
    @pytest.mark.parametrize(
        "completed,expected",
        [(0, 0.15), (19, 0.15), (20, 0.13), (49, 0.13), (50, 0.12), (99, 0.12), (100, 0.10), (500, 0.10)],
    )
    def test_tiers(self, unit_db, service, completed, expected):
        technician = make_technician(unit_db, completed_repairs=completed)
        assert service.get_commission_rate(technician) == pytest.approx(expected)

    def test_override_wins(self, unit_db, service):
        technician = make_technician(unit_db, completed_repairs=150, commission_rate=0.05)
        assert service.get_commission_rate(technician) == 0.05

    def test_zero_override_is_respected(self, unit_db, service):
        technician = make_technician(unit_db, commission_rate=0.0)
        assert service.get_commission_rate(technician) == 0.0

    def test_split_rounds_commission(self, service):
        assert service.split_amount(999, 0.15) == {"platform_commission": 150, "net_amount": 849}


class TestGenerateEarning:
    def test_creates_earning_from_final_cost(self, unit_db, service, completed_booking, technician):
        earning = service.generate_earning(completed_booking)

        assert earning.gross_amount == 1200
        assert earning.commission_rate == pytest.approx(0.15)
        assert earning.platform_commission == 180
        assert earning.net_amount == 1020
        assert earning.status == EarningStatus.PENDING.value
        assert earning.technician_user_id == technician.user_id
        unit_db.refresh(technician)
        assert technician.completed_repairs == 1

    def test_is_idempotent(self, unit_db, service, completed_booking, technician):
        first = service.generate_earning(completed_booking)
        second = service.generate_earning(completed_booking)

        assert first.id == second.id
        assert _earning_count(unit_db, completed_booking.id) == 1
        unit_db.refresh(technician)
        assert technician.completed_repairs == 1

    def test_existing_row_is_returned_untouched(self, unit_db, service, completed_booking, technician):
        existing = make_earning(unit_db, completed_booking, technician, gross_amount=1, net_amount=1, platform_commission=0)

        earning = service.generate_earning(completed_booking)

        assert earning.id == existing.id
        assert earning.gross_amount == 1
        unit_db.refresh(technician)
        assert technician.completed_repairs == 0

    def test_unreadable_existing_row_raises_repository_error(
        self, unit_db, service, completed_booking, technician
    ):
        make_earning(unit_db, completed_booking, technician)

        with patch.object(service.earning_repository, "get_by_booking", return_value=None):
            with pytest.raises(RepositoryException, match="not found after insert"):
                service.generate_earning(completed_booking)

    def test_requires_completed_booking(self, unit_db, service, technician):
        booking = make_booking(
            unit_db, make_user(unit_db), status=BookingStatus.IN_PROGRESS, technician=technician
        )
        with pytest.raises(ValidationException, match="completed bookings"):
            service.generate_earning(booking)

    def test_requires_positive_cost(self, unit_db, service, technician):
        booking = make_booking(
            unit_db,
            make_user(unit_db),
            status=BookingStatus.COMPLETED,
            technician=technician,
            estimated_cost=0,
        )
        with pytest.raises(ValidationException, match="no cost"):
            service.generate_earning(booking)

    def test_requires_technician(self, unit_db, service):
        booking = make_booking(unit_db, make_user(unit_db), status=BookingStatus.COMPLETED)
        with pytest.raises(NotFoundException):
            service.generate_earning(booking)


class TestReverseEarning:
    @pytest.mark.parametrize("status", [EarningStatus.PENDING, EarningStatus.APPROVED])
    def test_reverses_unpaid_earning(self, unit_db, service, completed_booking, technician, status):
        technician.completed_repairs = 3
        unit_db.flush()
        make_earning(unit_db, completed_booking, technician, status=status)

        reversed_earning = service.reverse_earning(completed_booking.id)

        assert reversed_earning.status == EarningStatus.REVERSED.value
        assert reversed_earning.notes.startswith("Reversed due to booking cancellation on ")
        assert reversed_earning.reversed_at is not None
        unit_db.refresh(technician)
        assert technician.completed_repairs == 2

    def test_paid_earning_is_left_alone(self, unit_db, service, completed_booking, technician, caplog):
        earning = make_earning(unit_db, completed_booking, technician, status=EarningStatus.PAID)

        assert service.reverse_earning(completed_booking.id) is None

        unit_db.refresh(earning)
        assert earning.status == EarningStatus.PAID.value
        assert "manual handling" in caplog.text

    def test_no_earning_is_a_noop(self, service, completed_booking):
        assert service.reverse_earning(completed_booking.id) is None

    def test_counter_never_goes_negative(self, unit_db, service, completed_booking, technician):
        make_earning(unit_db, completed_booking, technician)

        service.reverse_earning(completed_booking.id)

        unit_db.refresh(technician)
        assert technician.completed_repairs == 0


class TestAdminLifecycle:
    def test_approve_then_pay(self, unit_db, service, completed_booking, technician, admin):
        earning = make_earning(unit_db, completed_booking, technician)

        approved = service.approve_earning(earning.id, admin)
        assert approved.status == EarningStatus.APPROVED.value
        assert approved.approved_by_id == admin.id

        paid = service.mark_paid(earning.id, admin, paid_via="bank_transfer", payout_reference="UTR123")
        assert paid.status == EarningStatus.PAID.value
        assert paid.paid_via == "bank_transfer"
        assert paid.payout_reference == "UTR123"

    def test_cannot_pay_pending_earning(self, unit_db, service, completed_booking, technician, admin):
        earning = make_earning(unit_db, completed_booking, technician)

        with pytest.raises(ConflictException, match="Cannot pay earning with status 'pending'"):
            service.mark_paid(earning.id, admin, paid_via="upi")

    def test_approve_missing_earning(self, service, admin):
        with pytest.raises(NotFoundException):
            service.approve_earning("01HZZZZZZZZZZZZZZZZZZZZZZZ", admin)

    def test_non_admin_rejected(self, unit_db, service, completed_booking, technician):
        earning = make_earning(unit_db, completed_booking, technician)
        with pytest.raises(ForbiddenException):
            service.approve_earning(earning.id, make_user(unit_db))

    def test_hold(self, unit_db, service, completed_booking, technician, admin):
        earning = make_earning(unit_db, completed_booking, technician, status=EarningStatus.APPROVED)

        held = service.hold_earning(earning.id, admin, reason="Customer dispute")

        assert held.status == EarningStatus.HELD.value
        assert held.notes == "Customer dispute"
        with pytest.raises(ConflictException):
            service.hold_earning(earning.id, admin)

    def test_bulk_approve_reports_skipped(self, unit_db, service, technician, admin):
        owner = make_user(unit_db)
        pending = [
            make_earning(
                unit_db,
                make_booking(unit_db, owner, status=BookingStatus.COMPLETED, technician=technician),
                technician,
            )
            for _ in range(2)
        ]
        paid = make_earning(
            unit_db,
            make_booking(unit_db, owner, status=BookingStatus.COMPLETED, technician=technician),
            technician,
            status=EarningStatus.PAID,
        )

        result = service.bulk_approve([e.id for e in pending] + [paid.id], admin)

        assert result["approved"] == [e.id for e in pending]
        assert result["skipped"] == [paid.id]


class TestSummaries:
    def test_dashboard_totals(self, unit_db, service, technician):
        owner = make_user(unit_db)
        for status in (EarningStatus.PENDING, EarningStatus.APPROVED, EarningStatus.PAID, EarningStatus.REVERSED):
            booking = make_booking(
                unit_db, owner, status=BookingStatus.COMPLETED, technician=technician, estimated_cost=1000
            )
            make_earning(unit_db, booking, technician, status=status)

        dashboard = service.get_earnings_dashboard(technician.user_id)

        summary = dashboard["summary"]
        assert summary["pending_payout"] == 850
        assert summary["approved_payout"] == 850
        assert summary["paid_out"] == 850
        assert summary["total_earnings"] == 2550
        assert summary["completed_bookings"] == 3
        assert dashboard["commission_rate"] == pytest.approx(0.15)
        assert sum(m["bookings"] for m in dashboard["monthly"]) == 3

    def test_dashboard_requires_profile(self, unit_db, service):
        with pytest.raises(NotFoundException):
            service.get_earnings_dashboard(make_user(unit_db).id)

    def test_platform_summary(self, unit_db, service, technician):
        owner = make_user(unit_db)
        for status in (EarningStatus.PENDING, EarningStatus.PAID):
            booking = make_booking(
                unit_db, owner, status=BookingStatus.COMPLETED, technician=technician, estimated_cost=2000
            )
            make_earning(unit_db, booking, technician, status=status)

        summary = service.get_platform_summary()

        assert summary["total_revenue"] == 4000
        assert summary["total_commission"] == 600
        assert summary["total_tech_payouts"] == 3400
        assert summary["pending_payouts"] == 1700
        assert summary["paid_payouts"] == 1700
