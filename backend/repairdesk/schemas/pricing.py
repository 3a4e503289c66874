"""Pricing response schemas."""

from typing import Dict, Optional

from pydantic import Field

from .base import StandardizedModel


class PriceRange(StandardizedModel):
    min: int
    max: int


class PriceBreakdown(StandardizedModel):
    base_price: int
    urgency: str
    multiplier: float
    computed: int


class PriceQuote(StandardizedModel):
    """Result of a price calculation, snapshotted onto bookings."""

    estimated_cost: int = Field(..., ge=0)
    currency: str
    price_range: Optional[PriceRange] = None
    rule_id: Optional[str] = None
    breakdown: PriceBreakdown

    def snapshot(self) -> Dict[str, object]:
        """Breakdown as stored on the booking row."""
        return {**self.breakdown.model_dump(), "rule_id": self.rule_id}


class ServicePricing(StandardizedModel):
    issue_type: str
    base_price: int
    currency: str
    price_range: PriceRange
    urgency_multipliers: Dict[str, float]
