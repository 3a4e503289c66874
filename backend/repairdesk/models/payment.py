"""
Payment models.

A booking may accumulate several payment attempts over its life, but at
most one may be in flight (pending or processing) at a time. That rule is
a partial unique index, so two concurrent initiations cannot both insert.
Refunds are child rows; refunded_amount on the parent is the reserved sum.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional

import ulid
from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base

if TYPE_CHECKING:
    from .booking import Booking


class PaymentRecordStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


IN_FLIGHT_STATUSES = (PaymentRecordStatus.PENDING.value, PaymentRecordStatus.PROCESSING.value)
REFUNDABLE_STATUSES = (
    PaymentRecordStatus.COMPLETED.value,
    PaymentRecordStatus.PARTIALLY_REFUNDED.value,
)


class RefundStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Payment(Base):
    """One payment attempt against a booking."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, comment="Whole currency units")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=PaymentRecordStatus.PENDING.value
    )
    method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    gateway: Mapped[str] = mapped_column(String(30), nullable=False)
    gateway_order_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gateway_response: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refunded_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking")
    refunds: Mapped[List["PaymentRefund"]] = relationship(
        "PaymentRefund",
        back_populates="payment",
        order_by="PaymentRefund.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="check_payment_amount"),
        CheckConstraint(
            "refunded_amount >= 0 AND refunded_amount <= amount", name="check_refund_capacity"
        ),
        Index(
            "uq_payments_booking_in_flight",
            "booking_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'processing')"),
            sqlite_where=text("status IN ('pending', 'processing')"),
        ),
    )

    @property
    def refundable_balance(self) -> int:
        return int(self.amount) - int(self.refunded_amount or 0)

    def __repr__(self) -> str:
        return (
            f"<Payment(booking_id={self.booking_id}, amount={self.amount}, "
            f"status={self.status}, gateway={self.gateway})>"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "method": self.method,
            "gateway": self.gateway,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "refunded_amount": self.refunded_amount,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "refunds": [refund.to_dict() for refund in self.refunds],
        }


class PaymentRefund(Base):
    """Refund issued against a completed payment."""

    __tablename__ = "payment_refunds"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    payment_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RefundStatus.PENDING.value)
    gateway_refund_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    processed_by_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    payment: Mapped["Payment"] = relationship("Payment", back_populates="refunds")

    __table_args__ = (CheckConstraint("amount > 0", name="check_refund_amount_positive"),)

    def __repr__(self) -> str:
        return f"<PaymentRefund(payment_id={self.payment_id}, amount={self.amount}, status={self.status})>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "reason": self.reason,
            "status": self.status,
            "gateway_refund_id": self.gateway_refund_id,
        }
