# backend/tests/unit/core/test_exceptions.py
import pytest

from repairdesk.core.exceptions import (
    BookingTransitionConflict,
    BusinessRuleException,
    ConflictException,
    ForbiddenException,
    GatewayNotConfiguredException,
    NotFoundException,
    PaymentGatewayException,
    PaymentRequiredException,
    ServiceException,
    TechnicianAlreadyAssignedException,
    ValidationException,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "exc_class,status_code",
    [
        (ValidationException, 400),
        (PaymentRequiredException, 402),
        (ForbiddenException, 403),
        (NotFoundException, 404),
        (ConflictException, 409),
        (BusinessRuleException, 422),
        (ServiceException, 500),
        (PaymentGatewayException, 502),
    ],
)
def test_status_codes(exc_class, status_code):
    exc = exc_class("boom")
    assert exc.status_code == status_code
    http_exc = exc.to_http_exception()
    assert http_exc.status_code == status_code
    assert http_exc.detail["message"] == "boom"


def test_gateway_not_configured_is_501():
    exc = GatewayNotConfiguredException("stripe")
    assert exc.status_code == 501
    assert exc.details == {"gateway": "stripe"}
    assert exc.message == "Stripe gateway not configured"


def test_transition_conflict_carries_statuses():
    exc = BookingTransitionConflict("completed", "cancelled")
    assert isinstance(exc, ConflictException)
    assert exc.details == {"current_status": "completed", "target_status": "cancelled"}
    assert "completed" in exc.message and "cancelled" in exc.message


def test_already_assigned_message():
    exc = TechnicianAlreadyAssignedException("b1", "t1")
    assert exc.status_code == 409
    assert exc.message == "Booking already has a technician assigned"
