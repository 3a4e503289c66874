# backend/tests/unit/core/test_settings.py
from datetime import date, datetime

from pydantic import ValidationError
import pytest

from repairdesk.core.config import CommissionTier, Settings
from repairdesk.core.timezone_utils import get_platform_today, parse_date

pytestmark = pytest.mark.unit


class TestSettings:
    def test_defaults(self, test_settings):
        assert test_settings.platform_commission_rate == 0.15
        assert test_settings.max_reschedules == 3
        assert test_settings.default_currency == "INR"
        assert test_settings.payment_gateway == "manual"
        assert [t.min_repairs for t in test_settings.commission_tiers] == [100, 50, 20]

    def test_tiers_are_sorted_highest_threshold_first(self):
        settings = Settings(
            environment="test",
            commission_tiers=[
                CommissionTier(min_repairs=10, rate=0.14),
                CommissionTier(min_repairs=40, rate=0.11),
            ],
        )
        assert [t.min_repairs for t in settings.commission_tiers] == [40, 10]

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_commission_rate_bounds(self, rate):
        with pytest.raises(ValidationError):
            Settings(environment="test", platform_commission_rate=rate)

    def test_reschedule_cap_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(environment="test", max_reschedules=0)

    def test_env_aliases(self, monkeypatch):
        monkeypatch.setenv("MAX_RESCHEDULES", "5")
        monkeypatch.setenv("PAYMENT_GATEWAY", " Razorpay ")
        settings = Settings()
        assert settings.max_reschedules == 5
        assert settings.payment_gateway == "razorpay"

    def test_currency_is_upper_cased(self):
        assert Settings(environment="test", default_currency="usd").default_currency == "USD"

    def test_test_environment_uses_memory_database(self):
        assert Settings(environment="test").get_database_url() == "sqlite+pysqlite:///:memory:"


class TestDates:
    def test_parse_date_accepts_common_shapes(self):
        assert parse_date("2031-05-04") == date(2031, 5, 4)
        assert parse_date("2031-05-04T10:00:00Z") == date(2031, 5, 4)
        assert parse_date(datetime(2031, 5, 4, 23, 0)) == date(2031, 5, 4)
        assert parse_date(date(2031, 5, 4)) == date(2031, 5, 4)

    @pytest.mark.parametrize("value", ["", "tomorrow", "2031-13-40", None, 42])
    def test_parse_date_rejects_garbage(self, value):
        assert parse_date(value) is None

    def test_platform_today_uses_configured_timezone(self):
        settings = Settings(environment="test", platform_timezone="Asia/Kolkata")
        today = get_platform_today(settings)
        assert isinstance(today, date)
        assert abs((today - date.today()).days) <= 1
