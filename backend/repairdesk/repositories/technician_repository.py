# backend/repairdesk/repositories/technician_repository.py
"""Technician profile data access, including atomic counters and flags."""

import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy import case, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.technician import Technician, VerificationStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TechnicianRepository(BaseRepository[Technician]):
    def __init__(self, db: Session):
        super().__init__(db, Technician)

    def get_by_user_id(self, user_id: str) -> Optional[Technician]:
        return self.find_one_by(user_id=user_id)

    def find_eligible(
        self,
        service_type: str,
        exclude_ids: Iterable[str] = (),
        require_online: bool = True,
    ) -> List[Technician]:
        """
        Approved, available (and by default online) technicians handling a service.

        Specializations are JSON, so the case-insensitive membership test
        runs in Python over the SQL-filtered set. Order is the query order,
        which callers rely on as the stable tie-break.
        """
        excluded = set(exclude_ids)
        stmt = select(Technician).where(
            Technician.verification_status == VerificationStatus.APPROVED.value,
            Technician.is_available.is_(True),
        )
        if require_online:
            stmt = stmt.where(Technician.is_online.is_(True))
        stmt = stmt.order_by(Technician.created_at.asc(), Technician.id.asc())

        try:
            rows = list(self.db.scalars(stmt))
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading eligible technicians: {str(e)}")
            raise RepositoryException(f"Failed to load technicians: {str(e)}")
        return [t for t in rows if t.id not in excluded and t.handles(service_type)]

    def set_available(self, technician_id: str, is_available: bool) -> Optional[Technician]:
        return self.conditional_update(technician_id, [], {"is_available": is_available})

    def increment_completed_repairs(self, technician_id: str) -> Optional[Technician]:
        return self.conditional_update(
            technician_id, [], {"completed_repairs": Technician.completed_repairs + 1}
        )

    def decrement_completed_repairs(self, technician_id: str) -> Optional[Technician]:
        """Decrement without going below zero."""
        return self.conditional_update(
            technician_id,
            [],
            {
                "completed_repairs": case(
                    (Technician.completed_repairs > 0, Technician.completed_repairs - 1),
                    else_=0,
                )
            },
        )

    def set_verification(
        self,
        technician_id: str,
        from_statuses: Iterable[str],
        values: dict[str, Any],
    ) -> Optional[Technician]:
        return self.conditional_update(
            technician_id,
            [Technician.verification_status.in_(list(from_statuses))],
            values,
        )

    def list_by_verification(self, status: str, skip: int = 0, limit: int = 50) -> List[Technician]:
        return (
            self.db.query(Technician)
            .filter(Technician.verification_status == status)
            .order_by(Technician.created_at.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(joinedload(Technician.user))
