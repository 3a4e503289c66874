# backend/repairdesk/models/technician.py
"""
Technician profile model.

completed_repairs is only ever incremented atomically by the earnings
engine, and only when a new earning row was actually inserted.
"""

from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Technician(Base):
    __tablename__ = "technicians"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, unique=True)

    specializations = Column(JSON, nullable=False, default=list)
    experience_years = Column(Integer, nullable=False, default=0)
    bio = Column(Text, nullable=True)

    completed_repairs = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)

    is_available = Column(Boolean, nullable=False, default=True)
    is_online = Column(Boolean, nullable=False, default=False)
    verification_status = Column(
        String(20), nullable=False, default=VerificationStatus.PENDING.value, index=True
    )
    verified_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Per-technician override of the tiered platform commission.
    commission_rate = Column(Float, nullable=True)

    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)
    service_area = Column(String(200), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="technician_profile")

    __table_args__ = (
        CheckConstraint("completed_repairs >= 0", name="check_completed_repairs"),
        CheckConstraint("average_rating >= 0 AND average_rating <= 5", name="check_rating_range"),
        CheckConstraint(
            "commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate <= 1)",
            name="check_commission_rate",
        ),
        CheckConstraint(
            "verification_status IN ('pending', 'approved', 'rejected')",
            name="ck_technicians_verification_status",
        ),
    )

    @property
    def has_location(self) -> bool:
        return self.location_lat is not None and self.location_lng is not None

    def handles(self, service_type: str) -> bool:
        wanted = (service_type or "").lower()
        return any((s or "").lower() == wanted for s in (self.specializations or []))

    def __repr__(self) -> str:
        return (
            f"<Technician {self.id} repairs={self.completed_repairs} "
            f"rating={self.average_rating} available={self.is_available}>"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "specializations": list(self.specializations or []),
            "experience_years": self.experience_years,
            "completed_repairs": self.completed_repairs,
            "average_rating": self.average_rating,
            "total_reviews": self.total_reviews,
            "is_available": self.is_available,
            "is_online": self.is_online,
            "verification_status": self.verification_status,
            "commission_rate": self.commission_rate,
            "service_area": self.service_area,
        }
