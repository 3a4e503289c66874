# backend/repairdesk/repositories/earning_repository.py
"""
Earning data access.

insert_if_absent is the idempotency primitive for completion-time earnings:
the unique booking_id constraint decides the winner, and the statement's
rowcount tells the caller whether it inserted.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session
import ulid

from ..core.exceptions import RepositoryException
from ..models.earning import Earning, EarningStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class EarningRepository(BaseRepository[Earning]):
    def __init__(self, db: Session):
        super().__init__(db, Earning)

    def insert_if_absent(self, **fields: Any) -> Tuple[Earning, bool]:
        """
        Insert an earning unless one already exists for the booking.

        Returns (row, created). The existing row is returned untouched.
        """
        earning_id = str(ulid.ULID())
        values = {"id": earning_id, "status": EarningStatus.PENDING.value, **fields}

        created = False
        if self.dialect_name == "postgresql":
            stmt = (
                pg_insert(Earning)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["booking_id"])
                .returning(Earning.id)
            )
            created = self.db.execute(stmt).scalar_one_or_none() is not None
        else:
            stmt = insert(Earning).values(**values)
            if self.dialect_name == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")
            result = self.db.execute(stmt)
            created = bool(getattr(result, "rowcount", 0))

        if created:
            self.db.flush()
            row = self.db.get(Earning, earning_id)
        else:
            row = self.get_by_booking(fields["booking_id"])
        if row is None:
            raise RepositoryException(
                f"Earning for booking {fields['booking_id']} not found after insert"
            )
        return row, created

    def get_by_booking(self, booking_id: str) -> Optional[Earning]:
        return self.db.scalars(select(Earning).where(Earning.booking_id == booking_id)).first()

    def transition(
        self,
        earning_id: str,
        from_statuses: Iterable[str],
        values: Dict[str, Any],
    ) -> Optional[Earning]:
        return self.conditional_update(
            earning_id, [Earning.status.in_(list(from_statuses))], values
        )

    def list_for_technician(
        self,
        technician_id: str,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Earning]:
        stmt = select(Earning).where(Earning.technician_id == technician_id)
        if status:
            stmt = stmt.where(Earning.status == status)
        stmt = stmt.order_by(Earning.created_at.desc(), Earning.id.desc()).offset(skip).limit(limit)
        return list(self.db.scalars(stmt))

    def totals_by_status(self, technician_id: Optional[str] = None) -> Dict[str, Dict[str, int]]:
        """
        Aggregate gross, commission and net per status.

        Scoped to one technician when technician_id is given, else platform-wide.
        """
        stmt = select(
            Earning.status,
            func.count(Earning.id),
            func.coalesce(func.sum(Earning.gross_amount), 0),
            func.coalesce(func.sum(Earning.platform_commission), 0),
            func.coalesce(func.sum(Earning.net_amount), 0),
        ).group_by(Earning.status)
        if technician_id:
            stmt = stmt.where(Earning.technician_id == technician_id)

        totals: Dict[str, Dict[str, int]] = {}
        for status, count, gross, commission, net in self.db.execute(stmt):
            totals[status] = {
                "count": int(count),
                "gross": int(gross),
                "commission": int(commission),
                "net": int(net),
            }
        return totals
