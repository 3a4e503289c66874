# backend/repairdesk/repositories/pricing_rule_repository.py
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.pricing_rule import PricingRule
from .base_repository import BaseRepository


class PricingRuleRepository(BaseRepository[PricingRule]):
    def __init__(self, db: Session):
        super().__init__(db, PricingRule)

    def find_active(self, service_type: str, issue_type: str) -> Optional[PricingRule]:
        return self.db.scalars(
            select(PricingRule).where(
                PricingRule.service_type == service_type.lower(),
                PricingRule.issue_type == issue_type.lower(),
                PricingRule.is_active.is_(True),
            )
        ).first()

    def list_active_for_service(self, service_type: str) -> List[PricingRule]:
        return list(
            self.db.scalars(
                select(PricingRule)
                .where(
                    PricingRule.service_type == service_type.lower(),
                    PricingRule.is_active.is_(True),
                )
                .order_by(PricingRule.issue_type.asc())
            )
        )
