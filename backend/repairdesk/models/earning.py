"""
Technician earning model.

Exactly one earning may exist per booking; the unique constraint on
booking_id is what makes completion-time creation idempotent.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

import ulid
from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class EarningStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    HELD = "held"
    REVERSED = "reversed"


class Earning(Base):
    """Technician payout record derived from a completed booking."""

    __tablename__ = "earnings"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    technician_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("technicians.id"), nullable=False, index=True
    )
    technician_user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=False
    )
    gross_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    commission_rate: Mapped[float] = mapped_column(Float, nullable=False)
    platform_commission: Mapped[int] = mapped_column(Integer, nullable=False)
    net_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deductions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EarningStatus.PENDING.value, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("users.id"), nullable=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_via: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payout_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("booking_id", name="uq_earnings_booking"),
        CheckConstraint("gross_amount >= 0", name="check_gross_amount"),
        CheckConstraint("platform_commission >= 0", name="check_platform_commission"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'paid', 'held', 'reversed')", name="ck_earnings_status"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Earning(booking_id={self.booking_id}, technician_id={self.technician_id}, "
            f"net={self.net_amount}, status={self.status})>"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "technician_id": self.technician_id,
            "gross_amount": self.gross_amount,
            "commission_rate": self.commission_rate,
            "platform_commission": self.platform_commission,
            "net_amount": self.net_amount,
            "bonus": self.bonus,
            "deductions": self.deductions,
            "currency": self.currency,
            "status": self.status,
            "notes": self.notes,
            "paid_via": self.paid_via,
        }
