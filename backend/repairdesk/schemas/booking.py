# backend/repairdesk/schemas/booking.py
"""
Booking request schemas for the repairdesk platform.

Shape validation lives here; rules that depend on the clock or on stored
state (future dates, eligibility, reschedule caps) are enforced in services.
"""

from datetime import date
import re
from typing import Optional

from pydantic import Field, field_validator

from ..core.ulid_helper import is_valid_ulid
from ..models.booking import BookingStatus, TimeSlot, Urgency
from .base import StandardizedModel, StrictRequestModel

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _ensure_ulid(value: str, field_name: str) -> str:
    if not is_valid_ulid(value):
        raise ValueError(f"{field_name} must be a ULID")
    return value


def _ensure_date_only(value: object, field_name: str) -> object:
    if isinstance(value, str):
        candidate = value.strip()
        if not DATE_ONLY_REGEX.fullmatch(candidate):
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date-only string")
        return candidate
    return value


class DeviceInfo(StandardizedModel):
    brand: Optional[str] = Field(None, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    issue: Optional[str] = Field(None, max_length=500)


class Address(StandardizedModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class GeoPoint(StandardizedModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class BookingCreate(StrictRequestModel):
    """Customer request for a repair."""

    service_type: str = Field(..., min_length=1, max_length=100)
    issue_type: Optional[str] = Field(None, max_length=100)
    urgency: Urgency = Urgency.NORMAL
    description: str = Field(..., min_length=1, max_length=2000)
    device_info: Optional[DeviceInfo] = None
    address: Optional[Address] = None
    location: Optional[GeoPoint] = None
    preferred_date: date
    preferred_time_slot: TimeSlot = TimeSlot.MORNING
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("preferred_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "preferred_date")

    @field_validator("service_type", "issue_type")
    @classmethod
    def _lowercase(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


class BookingComplete(StrictRequestModel):
    final_cost: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=2000)


class AssignTechnicianRequest(StrictRequestModel):
    technician_id: str = Field(..., min_length=26, max_length=26)

    @field_validator("technician_id")
    @classmethod
    def _ulid(cls, v: str) -> str:
        return _ensure_ulid(v, "technician_id")


class StatusUpdateRequest(StrictRequestModel):
    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)


class CancelBookingRequest(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=500)


class RescheduleRequest(StrictRequestModel):
    new_date: str = Field(..., description="New preferred date, YYYY-MM-DD")
    new_time_slot: Optional[TimeSlot] = None
    reason: Optional[str] = Field(None, max_length=500)


class BookingListParams(StrictRequestModel):
    status: Optional[BookingStatus] = None
    service_type: Optional[str] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit
