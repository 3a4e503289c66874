"""Technician profile request schemas."""

from typing import List, Optional

from pydantic import Field, field_validator

from .base import StrictRequestModel
from .booking import GeoPoint


def _clean_specializations(values: List[str]) -> List[str]:
    seen: List[str] = []
    for item in values:
        value = item.strip().lower()
        if value and value not in seen:
            seen.append(value)
    if not seen:
        raise ValueError("At least one specialization is required")
    return seen


class TechnicianProfileCreate(StrictRequestModel):
    specializations: List[str] = Field(..., min_length=1)
    experience_years: int = Field(0, ge=0, le=60)
    bio: Optional[str] = Field(None, max_length=2000)
    service_area: Optional[str] = Field(None, max_length=200)
    location: Optional[GeoPoint] = None

    @field_validator("specializations")
    @classmethod
    def _normalize_specializations(cls, v: List[str]) -> List[str]:
        return _clean_specializations(v)


class TechnicianProfileUpdate(StrictRequestModel):
    """Self-service edits. Verification and counters are not editable here."""

    specializations: Optional[List[str]] = None
    experience_years: Optional[int] = Field(None, ge=0, le=60)
    bio: Optional[str] = Field(None, max_length=2000)
    service_area: Optional[str] = Field(None, max_length=200)
    location: Optional[GeoPoint] = None

    @field_validator("specializations")
    @classmethod
    def _normalize_specializations(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return _clean_specializations(v)
