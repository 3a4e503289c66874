# backend/repairdesk/core/exceptions.py
"""
Domain-specific exceptions for the repairdesk platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Every transition failure surfaces as exactly one of these types.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the subclass status code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input is malformed or a request is rejected before touching state."""

    status_code = status.HTTP_400_BAD_REQUEST


class PaymentRequiredException(DomainException):
    """Raised when an action is blocked on an unpaid booking."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED


class ForbiddenException(DomainException):
    """Raised when the actor's role or ownership does not permit the action."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when a state-transition precondition failed."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when input is well-formed but rejected by a domain rule."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


class PaymentGatewayException(ServiceException):
    """Raised when a payment provider call fails."""

    status_code = status.HTTP_502_BAD_GATEWAY


class GatewayNotConfiguredException(ServiceException):
    """Raised when a payment provider is selected but has no credentials."""

    status_code = status.HTTP_501_NOT_IMPLEMENTED

    def __init__(self, gateway: str):
        super().__init__(
            message=f"{gateway.capitalize()} gateway not configured",
            code="GATEWAY_NOT_CONFIGURED",
            details={"gateway": gateway},
        )


# Specific business exceptions


class BookingTransitionConflict(ConflictException):
    """Raised when a booking is not in a state that permits the requested transition."""

    def __init__(self, current_status: str, target_status: str, message: Optional[str] = None):
        super().__init__(
            message=message
            or f"Cannot transition booking from '{current_status}' to '{target_status}'",
            code="BOOKING_TRANSITION_CONFLICT",
            details={"current_status": current_status, "target_status": target_status},
        )


class TechnicianAlreadyAssignedException(ConflictException):
    """Raised when a second assignment races an existing one."""

    def __init__(self, booking_id: str, technician_id: str):
        super().__init__(
            message="Booking already has a technician assigned",
            code="TECHNICIAN_ALREADY_ASSIGNED",
            details={"booking_id": booking_id, "technician_id": technician_id},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
