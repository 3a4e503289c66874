# backend/repairdesk/models/pricing_rule.py
"""Pricing rules keyed by (service_type, issue_type)."""

from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func
import ulid

from ..database import Base

GENERAL_ISSUE = "general"

DEFAULT_URGENCY_MULTIPLIERS = {"normal": 1.0, "urgent": 1.5, "emergency": 2.0}


class PricingRule(Base):
    __tablename__ = "pricing_rules"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    # Stored lowercased; lookups lowercase their inputs.
    service_type = Column(String(100), nullable=False)
    issue_type = Column(String(100), nullable=False, default=GENERAL_ISSUE)
    base_price = Column(Integer, nullable=False)
    urgency_multipliers = Column(
        JSON, nullable=False, default=lambda: dict(DEFAULT_URGENCY_MULTIPLIERS)
    )
    min_price = Column(Integer, nullable=True)
    max_price = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, default="INR")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("service_type", "issue_type", name="uq_pricing_service_issue"),
        CheckConstraint("base_price >= 0", name="check_base_price"),
        CheckConstraint(
            "min_price IS NULL OR max_price IS NULL OR min_price <= max_price",
            name="check_price_range",
        ),
    )

    def multiplier_for(self, urgency: str) -> float:
        multipliers = self.urgency_multipliers or DEFAULT_URGENCY_MULTIPLIERS
        return float(multipliers.get(urgency, 1.0))

    def __repr__(self) -> str:
        return f"<PricingRule {self.service_type}/{self.issue_type} base={self.base_price}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "service_type": self.service_type,
            "issue_type": self.issue_type,
            "base_price": self.base_price,
            "urgency_multipliers": dict(self.urgency_multipliers or {}),
            "min_price": self.min_price,
            "max_price": self.max_price,
            "currency": self.currency,
        }
