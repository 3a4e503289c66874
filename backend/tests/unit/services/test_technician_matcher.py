# backend/tests/unit/services/test_technician_matcher.py
from datetime import datetime
from types import SimpleNamespace

import pytest

from repairdesk.models.booking import BookingStatus
from repairdesk.models.technician import VerificationStatus
from repairdesk.services.technician_matcher import TechnicianMatcher, compute_score, normalize
from tests.factories.builders import future_date, make_booking, make_technician, make_user

pytestmark = pytest.mark.unit


@pytest.fixture
def matcher(unit_db, test_settings):
    return TechnicianMatcher(unit_db, test_settings)


class TestScoring:
    def test_normalize_caps_at_one(self):
        assert normalize(10, 20) == 0.5
        assert normalize(400, 200) == 1
        assert normalize(None, 5) == 0

    def test_documented_example_scores(self):
        a = SimpleNamespace(average_rating=5, experience_years=10, completed_repairs=50, total_reviews=20)
        b = SimpleNamespace(average_rating=4, experience_years=20, completed_repairs=10, total_reviews=5)

        # 0.5*0.8 + 0.2*1.0 + 0.2*0.05 + 0.1*0.05; A still outranks B.
        assert compute_score(a) == pytest.approx(0.67)
        assert compute_score(b) == pytest.approx(0.615)
        assert compute_score(a) > compute_score(b)


class TestFindMatchingTechnicians:
    def test_best_match_is_highest_score(self, unit_db, matcher):
        make_technician(
            unit_db, average_rating=4, experience_years=20, completed_repairs=10, total_reviews=5
        )
        best = make_technician(
            unit_db, average_rating=5, experience_years=10, completed_repairs=50, total_reviews=20
        )

        assert matcher.find_best_match("mobile") == best
        ranked = matcher.find_matching_technicians("mobile")
        assert [round(m.score, 3) for m in ranked] == [0.67, 0.615]

    def test_filters_ineligible_technicians(self, unit_db, matcher):
        make_technician(unit_db, verification_status=VerificationStatus.PENDING.value)
        make_technician(unit_db, is_available=False)
        make_technician(unit_db, is_online=False)
        make_technician(unit_db, specializations=["laptop"])
        eligible = make_technician(unit_db, specializations=["Laptop", "MOBILE"])

        matches = matcher.find_matching_technicians("mobile")

        assert [m.technician for m in matches] == [eligible]

    def test_returns_none_when_nobody_matches(self, matcher):
        assert matcher.find_best_match("drone") is None

    def test_ties_keep_query_order(self, unit_db, matcher):
        first = make_technician(unit_db, created_at=datetime(2030, 1, 1, 9, 0))
        second = make_technician(unit_db, created_at=datetime(2030, 1, 1, 9, 5))

        matches = matcher.find_matching_technicians("mobile")

        assert [m.technician for m in matches] == [first, second]

    def test_exclusion_list(self, unit_db, matcher):
        skipped = make_technician(unit_db, average_rating=5)
        other = make_technician(unit_db, average_rating=3)

        assert matcher.find_best_match("mobile", exclude_ids=[skipped.id]) == other

    def test_distance_filter(self, unit_db, matcher):
        # Bengaluru centre as the job site
        site = (12.9716, 77.5946)
        near = make_technician(unit_db, location_lat=12.9352, location_lng=77.6245)
        make_technician(unit_db, location_lat=13.0827, location_lng=80.2707, average_rating=5)
        make_technician(unit_db)  # no location, dropped when a site is given

        matches = matcher.find_matching_technicians("mobile", location=site)

        assert [m.technician for m in matches] == [near]
        assert 0 < matches[0].distance_m < 10_000

    def test_custom_radius(self, unit_db, matcher):
        make_technician(unit_db, location_lat=12.9352, location_lng=77.6245)

        matches = matcher.find_matching_technicians(
            "mobile", location=(12.9716, 77.5946), max_distance_m=1_000
        )

        assert matches == []

    def test_skips_technicians_busy_on_date(self, unit_db, matcher):
        busy = make_technician(unit_db, average_rating=5)
        free = make_technician(unit_db, average_rating=2)
        owner = make_user(unit_db)
        day = future_date(5)
        make_booking(
            unit_db,
            owner,
            status=BookingStatus.ASSIGNED,
            technician=busy,
            preferred_date=day,
            preferred_time_slot="morning",
        )

        assert matcher.find_best_match("mobile", on_date=day, time_slot="morning") == free
        assert matcher.find_best_match("mobile", on_date=day, time_slot="evening") == busy

    def test_limit(self, unit_db, matcher):
        for _ in range(4):
            make_technician(unit_db)

        assert len(matcher.find_matching_technicians("mobile", limit=2)) == 2
