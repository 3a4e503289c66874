# backend/tests/conftest.py
"""
Pytest configuration for the repairdesk test suite.

Sets test mode before any repairdesk import so the module-level engine
points at an in-memory database and no .env file leaks into tests.
"""

import os
import sys

# CRITICAL: Set testing mode BEFORE any repairdesk imports!
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("CI", "1")
os.environ.pop("DATABASE_URL", None)

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from typing import List

import pytest

from repairdesk.core.config import Settings
from repairdesk.events import BookingEvent, InProcessEventBus


@pytest.fixture
def test_settings() -> Settings:
    """Fresh settings with the documented defaults and the manual gateway."""
    return Settings(environment="test", payment_gateway="manual", platform_timezone="UTC")


class RecordingBus(InProcessEventBus):
    """Event bus that also keeps every published event for assertions."""

    def __init__(self):
        super().__init__()
        self.events: List[BookingEvent] = []

    def publish(self, event: BookingEvent) -> None:
        self.events.append(event)
        super().publish(event)

    def of_type(self, event_type) -> List[BookingEvent]:
        return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def event_bus() -> RecordingBus:
    return RecordingBus()
