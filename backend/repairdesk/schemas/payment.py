"""Payment request schemas."""

from typing import Optional

from pydantic import Field, field_validator

from ..core.ulid_helper import is_valid_ulid
from .base import StrictRequestModel


class PaymentInitiate(StrictRequestModel):
    booking_id: str = Field(..., min_length=26, max_length=26)
    amount: Optional[int] = Field(None, gt=0, description="Defaults to the booking cost")
    method: Optional[str] = Field(None, max_length=30)

    @field_validator("booking_id")
    @classmethod
    def _ulid(cls, v: str) -> str:
        if not is_valid_ulid(v):
            raise ValueError("booking_id must be a ULID")
        return v


class PaymentConfirm(StrictRequestModel):
    gateway_payment_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    signature: Optional[str] = None


class RefundRequest(StrictRequestModel):
    amount: Optional[int] = Field(None, gt=0, description="Defaults to the full refundable balance")
    reason: Optional[str] = Field(None, max_length=500)
