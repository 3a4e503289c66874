# backend/tests/unit/services/test_payment_service.py
"""
Payment flows over an injected gateway.

The manual gateway is used for the happy paths; a scripted gateway stands
in for provider failures.
"""

import pytest

from repairdesk.core.enums import RoleName
from repairdesk.core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    PaymentGatewayException,
    PaymentRequiredException,
    ValidationException,
)
from repairdesk.models.booking import BookingStatus, PaymentStatus
from repairdesk.models.payment import PaymentRecordStatus, RefundStatus
from repairdesk.services.gateways import ManualGateway, PaymentVerification
from repairdesk.services.payment_service import PaymentService
from tests.factories.builders import make_booking, make_payment, make_user

pytestmark = pytest.mark.unit


class ScriptedGateway(ManualGateway):
    """Manual gateway whose verification and refunds can be made to fail."""

    def __init__(self, verified=True, refund_error=None):
        self.verified = verified
        self.refund_error = refund_error
        self.refund_calls = []

    def verify_payment(self, payment_ref, order_ref, signature):
        if not self.verified:
            return PaymentVerification(verified=False, payment_id=payment_ref)
        return super().verify_payment(payment_ref, order_ref, signature)

    def process_refund(self, payment_ref, amount):
        self.refund_calls.append((payment_ref, amount))
        if self.refund_error is not None:
            raise self.refund_error
        return super().process_refund(payment_ref, amount)


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def service(unit_db, test_settings, gateway):
    return PaymentService(unit_db, test_settings, gateway_resolver=lambda name, cfg: gateway)


@pytest.fixture
def owner(unit_db):
    return make_user(unit_db)


@pytest.fixture
def booking(unit_db, owner):
    return make_booking(unit_db, owner, payment_status=PaymentStatus.FAILED.value)


class TestInitiatePayment:
    def test_opens_pending_payment(self, unit_db, service, owner, booking):
        result = service.initiate_payment(owner, booking.id, method="upi")

        payment = result.payment
        assert payment.status == PaymentRecordStatus.PENDING.value
        assert payment.amount == 1000
        assert payment.gateway == "manual"
        assert payment.gateway_order_id == result.gateway_order.order_id
        unit_db.refresh(booking)
        assert booking.payment_status == PaymentStatus.PENDING.value

    def test_second_initiation_is_rejected(self, service, owner, booking):
        service.initiate_payment(owner, booking.id)

        with pytest.raises(ConflictException) as exc_info:
            service.initiate_payment(owner, booking.id)
        assert exc_info.value.code == "PAYMENT_IN_PROGRESS"

    def test_only_owner_can_pay(self, unit_db, service, booking):
        with pytest.raises(ForbiddenException):
            service.initiate_payment(make_user(unit_db), booking.id)

    def test_paid_booking_rejected(self, unit_db, service, owner):
        paid = make_booking(unit_db, owner, paid=True)
        with pytest.raises(ValidationException, match="already paid"):
            service.initiate_payment(owner, paid.id)

    def test_cancelled_booking_rejected(self, unit_db, service, owner):
        cancelled = make_booking(unit_db, owner, status=BookingStatus.CANCELLED)
        with pytest.raises(ValidationException, match="cancelled"):
            service.initiate_payment(owner, cancelled.id)

    def test_missing_booking(self, service, owner):
        with pytest.raises(NotFoundException):
            service.initiate_payment(owner, "01HZZZZZZZZZZZZZZZZZZZZZZZ")

    def test_custom_amount_must_be_positive(self, service, owner, booking):
        with pytest.raises(ValidationException):
            service.initiate_payment(owner, booking.id, amount=0)


class TestConfirmPayment:
    def test_confirm_marks_booking_paid(self, unit_db, service, owner, booking):
        payment = service.initiate_payment(owner, booking.id).payment

        settlement = service.confirm_payment(payment.id, gateway_payment_id="PAY-1")

        assert settlement.payment.status == PaymentRecordStatus.COMPLETED.value
        assert settlement.payment.gateway_payment_id == "PAY-1"
        assert settlement.payment.paid_at is not None
        assert settlement.booking.is_paid is True
        assert settlement.booking.payment_status == PaymentStatus.PAID.value

    def test_confirm_twice_conflicts(self, service, owner, booking):
        payment = service.initiate_payment(owner, booking.id).payment
        service.confirm_payment(payment.id)

        with pytest.raises(ConflictException, match="already completed"):
            service.confirm_payment(payment.id)

    def test_failed_verification(self, unit_db, service, gateway, owner, booking):
        payment = service.initiate_payment(owner, booking.id).payment
        gateway.verified = False

        with pytest.raises(PaymentRequiredException):
            service.confirm_payment(payment.id, signature="bad")

        unit_db.refresh(payment)
        assert payment.status == PaymentRecordStatus.FAILED.value
        assert payment.failure_reason == "Payment verification failed"
        unit_db.refresh(booking)
        assert booking.is_paid is False

        # A failed attempt no longer blocks a new one.
        gateway.verified = True
        assert service.initiate_payment(owner, booking.id).payment.id != payment.id

    def test_unknown_payment(self, service):
        with pytest.raises(NotFoundException):
            service.confirm_payment("01HZZZZZZZZZZZZZZZZZZZZZZZ")

    def test_fail_payment(self, unit_db, service, owner, booking):
        payment = service.initiate_payment(owner, booking.id).payment

        settlement = service.fail_payment(payment.id, "Card declined")

        assert settlement.payment.status == PaymentRecordStatus.FAILED.value
        assert settlement.payment.failure_reason == "Card declined"
        assert settlement.booking.payment_status == PaymentStatus.FAILED.value
        with pytest.raises(ConflictException):
            service.fail_payment(payment.id)


class TestRefunds:
    @pytest.fixture
    def paid_booking(self, unit_db, owner):
        return make_booking(unit_db, owner, paid=True, estimated_cost=1000)

    def test_partial_then_full_refund(self, unit_db, service, paid_booking):
        payment = make_payment(unit_db, paid_booking)

        first = service.process_refund(payment.id, 400, reason="Part not used")
        assert first.payment.status == PaymentRecordStatus.PARTIALLY_REFUNDED.value
        assert first.payment.refunded_amount == 400
        assert first.refund.status == RefundStatus.COMPLETED.value
        assert first.booking.payment_status == PaymentStatus.PARTIALLY_REFUNDED.value

        second = service.process_refund(payment.id)
        assert second.refund.amount == 600
        assert second.payment.status == PaymentRecordStatus.REFUNDED.value
        assert second.payment.refunded_amount == 1000
        assert second.booking.payment_status == PaymentStatus.REFUNDED.value

    def test_refund_cannot_exceed_balance(self, unit_db, service, paid_booking):
        payment = make_payment(unit_db, paid_booking)
        service.process_refund(payment.id, 700)

        with pytest.raises(ValidationException, match="exceeds refundable balance"):
            service.process_refund(payment.id, 400)

        unit_db.refresh(payment)
        assert payment.refunded_amount == 700

    def test_refund_requires_captured_payment(self, unit_db, service, paid_booking):
        payment = make_payment(unit_db, paid_booking, status=PaymentRecordStatus.PENDING)

        with pytest.raises(ValidationException, match="completed payments"):
            service.process_refund(payment.id, 100)

    def test_fully_refunded_payment_has_nothing_left(self, unit_db, service, paid_booking):
        payment = make_payment(
            unit_db, paid_booking, status=PaymentRecordStatus.REFUNDED, refunded_amount=1000
        )

        with pytest.raises(ValidationException):
            service.process_refund(payment.id)

    def test_gateway_failure_releases_reservation(self, unit_db, service, gateway, paid_booking):
        payment = make_payment(unit_db, paid_booking)
        gateway.refund_error = RuntimeError("provider timeout")

        with pytest.raises(PaymentGatewayException):
            service.process_refund(payment.id, 300)

        unit_db.refresh(payment)
        assert payment.refunded_amount == 0
        assert payment.status == PaymentRecordStatus.COMPLETED.value
        assert [r.status for r in payment.refunds] == [RefundStatus.FAILED.value]
        assert gateway.refund_calls == [(payment.gateway_payment_id, 300)]

    def test_missing_payment(self, service):
        with pytest.raises(NotFoundException):
            service.process_refund("01HZZZZZZZZZZZZZZZZZZZZZZZ")


class TestBookingPayments:
    def test_owner_and_admin_can_list(self, unit_db, service, owner, booking):
        make_payment(unit_db, booking, status=PaymentRecordStatus.FAILED)
        make_payment(unit_db, booking)

        assert len(service.get_booking_payments(booking.id, owner)) == 2
        admin = make_user(unit_db, RoleName.ADMIN)
        assert len(service.get_booking_payments(booking.id, admin)) == 2

    def test_stranger_is_forbidden(self, unit_db, service, booking):
        with pytest.raises(ForbiddenException):
            service.get_booking_payments(booking.id, make_user(unit_db))
