"""
Timezone utilities for the repairdesk platform.

Timestamps are stored in UTC; "today" for booking dates is evaluated in
the configured platform timezone.
"""

from datetime import date, datetime, timezone
from typing import Optional

import pytz

from .config import Settings, settings as default_settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_platform_timezone(config: Optional[Settings] = None) -> pytz.BaseTzInfo:
    cfg = config or default_settings
    return pytz.timezone(cfg.platform_timezone)


def get_platform_today(config: Optional[Settings] = None) -> date:
    """Today's date in the platform timezone."""
    return datetime.now(get_platform_timezone(config)).date()


def parse_date(value: object) -> Optional[date]:
    """
    Accept a date, a datetime or an ISO string; None when unparseable.

    Datetimes are reduced to their calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        candidate = value.strip()
        try:
            return date.fromisoformat(candidate[:10])
        except ValueError:
            return None
    return None
