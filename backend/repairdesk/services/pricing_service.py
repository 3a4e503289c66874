# backend/repairdesk/services/pricing_service.py
"""
Pricing Service for the repairdesk platform.

All price calculations flow through this service. Rule resolution order:
1. Active rule for (service_type, issue_type)
2. Active rule for (service_type, "general")
3. Built-in default pricing
"""

from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..models.pricing_rule import DEFAULT_URGENCY_MULTIPLIERS, GENERAL_ISSUE, PricingRule
from ..repositories.factory import RepositoryFactory
from ..schemas.pricing import PriceBreakdown, PriceQuote, PriceRange, ServicePricing
from .base import BaseService

logger = logging.getLogger(__name__)

DEFAULT_BASE_PRICE = 500


def round_money(value: Decimal) -> int:
    """Round to whole currency units, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PricingService(BaseService):
    """Resolves booking estimates from pricing rules."""

    def __init__(self, db: Session, config: Optional[Settings] = None):
        super().__init__(db, config)
        self.pricing_rule_repository = RepositoryFactory.create_pricing_rule_repository(db)

    def resolve_rule(self, service_type: str, issue_type: Optional[str]) -> Optional[PricingRule]:
        rule = None
        if issue_type:
            rule = self.pricing_rule_repository.find_active(service_type, issue_type)
        if rule is None:
            rule = self.pricing_rule_repository.find_active(service_type, GENERAL_ISSUE)
        return rule

    @BaseService.measure_operation("calculate_price")
    def calculate_price(
        self,
        service_type: str,
        issue_type: Optional[str] = None,
        urgency: str = "normal",
    ) -> PriceQuote:
        """
        Calculate the estimated cost for a repair.

        Args:
            service_type: e.g. 'laptop', 'mobile'
            issue_type: e.g. 'screen_repair'; falls back to the 'general' rule
            urgency: 'normal' | 'urgent' | 'emergency'

        Returns:
            PriceQuote with the breakdown that bookings snapshot
        """
        urgency = urgency or "normal"
        rule = self.resolve_rule(service_type, issue_type)

        if rule is not None:
            base_price = int(rule.base_price)
            multiplier = rule.multiplier_for(urgency)
            currency = rule.currency or self.settings.default_currency
        else:
            base_price = DEFAULT_BASE_PRICE
            multiplier = float(DEFAULT_URGENCY_MULTIPLIERS.get(urgency, 1.0))
            currency = self.settings.default_currency
            self.logger.info(
                "No pricing rule found, using defaults",
                extra={"service_type": service_type, "issue_type": issue_type},
            )

        estimated_cost = round_money(Decimal(base_price) * Decimal(str(multiplier)))

        price_range = None
        if rule is not None:
            price_range = PriceRange(
                min=rule.min_price or estimated_cost,
                max=rule.max_price or estimated_cost,
            )

        return PriceQuote(
            estimated_cost=estimated_cost,
            currency=currency,
            price_range=price_range,
            rule_id=rule.id if rule is not None else None,
            breakdown=PriceBreakdown(
                base_price=base_price,
                urgency=urgency,
                multiplier=multiplier,
                computed=estimated_cost,
            ),
        )

    @BaseService.measure_operation("get_pricing_for_service")
    def get_pricing_for_service(self, service_type: str) -> List[ServicePricing]:
        """List the active rules for a service so customers can compare repairs."""
        return [
            ServicePricing(
                issue_type=rule.issue_type,
                base_price=rule.base_price,
                currency=rule.currency,
                price_range=PriceRange(
                    min=rule.min_price or rule.base_price,
                    max=rule.max_price or rule.base_price,
                ),
                urgency_multipliers=dict(rule.urgency_multipliers or DEFAULT_URGENCY_MULTIPLIERS),
            )
            for rule in self.pricing_rule_repository.list_active_for_service(service_type)
        ]
