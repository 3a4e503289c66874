# backend/repairdesk/services/technician_matcher.py
"""
Technician Matching Engine.

Finds eligible technicians for a job and ranks them by a weighted score
of rating, experience, completed repairs and review count. Used by
booking creation (auto-assign) and by rescheduling (replacement search).
"""

from dataclasses import dataclass
from datetime import date
import logging
from typing import Iterable, List, Optional, Tuple

from geopy.distance import geodesic
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..models.technician import Technician
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

# Each weight applies to a value normalized against its cap.
WEIGHTS = {
    "rating": 0.5,
    "experience": 0.2,
    "completions": 0.2,
    "review_count": 0.1,
}
NORMALIZATION_CAPS = {
    "rating": 5,
    "experience": 20,
    "completions": 200,
    "review_count": 100,
}


def normalize(value: float, maximum: float) -> float:
    return min((value or 0) / maximum, 1)


def compute_score(technician: Technician) -> float:
    """Match score in [0, 1]."""
    return (
        WEIGHTS["rating"] * normalize(technician.average_rating, NORMALIZATION_CAPS["rating"])
        + WEIGHTS["experience"]
        * normalize(technician.experience_years, NORMALIZATION_CAPS["experience"])
        + WEIGHTS["completions"]
        * normalize(technician.completed_repairs, NORMALIZATION_CAPS["completions"])
        + WEIGHTS["review_count"]
        * normalize(technician.total_reviews, NORMALIZATION_CAPS["review_count"])
    )


@dataclass
class TechnicianMatch:
    technician: Technician
    score: float
    distance_m: Optional[float] = None


class TechnicianMatcher(BaseService):
    def __init__(self, db: Session, config: Optional[Settings] = None):
        super().__init__(db, config)
        self.technician_repository = RepositoryFactory.create_technician_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("find_matching_technicians")
    def find_matching_technicians(
        self,
        service_type: str,
        location: Optional[Tuple[float, float]] = None,
        max_distance_m: Optional[float] = None,
        limit: Optional[int] = None,
        exclude_ids: Iterable[str] = (),
        on_date: Optional[date] = None,
        time_slot: Optional[str] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> List[TechnicianMatch]:
        """
        Rank eligible technicians for a service.

        Args:
            service_type: Required specialization (case-insensitive exact match)
            location: Optional (lat, lng); technicians without a location or
                beyond max_distance_m are dropped when given
            max_distance_m: Radius in metres, defaults to configuration
            limit: Maximum results, defaults to configuration
            exclude_ids: Technician ids never to return
            on_date: When set, skip technicians with active work that day
            time_slot: Narrows the on_date conflict check to one slot
            exclude_booking_id: Booking ignored by the conflict check

        Returns:
            Matches sorted by score descending; ties keep query order.
        """
        limit = limit or self.settings.matcher_default_limit
        radius = max_distance_m or self.settings.matcher_max_distance_m

        excluded = set(exclude_ids)
        if on_date is not None:
            excluded |= self.booking_repository.busy_technician_ids(
                on_date, time_slot, exclude_booking_id
            )

        candidates = self.technician_repository.find_eligible(service_type, exclude_ids=excluded)

        matches: List[TechnicianMatch] = []
        for technician in candidates:
            distance_m = None
            if location is not None:
                if not technician.has_location:
                    continue
                distance_m = geodesic(
                    location, (technician.location_lat, technician.location_lng)
                ).meters
                if distance_m > radius:
                    continue
            matches.append(TechnicianMatch(technician, compute_score(technician), distance_m))

        matches.sort(key=lambda match: match.score, reverse=True)
        self.logger.debug(
            "Technician matching finished",
            extra={
                "service_type": service_type,
                "candidates": len(candidates),
                "matches": len(matches),
            },
        )
        return matches[:limit]

    def find_best_match(self, service_type: str, **options) -> Optional[Technician]:
        """Top-ranked technician for auto-assignment, or None."""
        options["limit"] = 1
        matches = self.find_matching_technicians(service_type, **options)
        return matches[0].technician if matches else None
